"""FastAPI app: settings, statistics, credential probes and the running flag."""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from core import DEFAULT_OLLAMA_ENDPOINT, DEFAULT_POLL_INTERVAL_SECS, DashboardStats, Job, JobState, PipelineConfig, StageSummary
from webapp.runtime import get_runtime, get_service


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    runtime = get_runtime()
    runtime.start_background()
    logger.info("api_started pipeline_state=%s", runtime.controller.state.value)
    try:
        yield
    finally:
        await runtime.shutdown()


app = FastAPI(title="ShotAuto API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ConfigPayload(BaseModel):
    youtube_api_key: Optional[str] = None
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    ollama_endpoint: str = DEFAULT_OLLAMA_ENDPOINT
    poll_interval_secs: int = Field(default=DEFAULT_POLL_INTERVAL_SECS, gt=0)


class TrendSourceProbePayload(BaseModel):
    api_key: Optional[str] = None


class MessagingProbePayload(BaseModel):
    token: Optional[str] = None


class InferenceProbePayload(BaseModel):
    endpoint: Optional[str] = None


class RunningPayload(BaseModel):
    running: bool


def _running_body() -> Dict[str, Any]:
    controller = get_service().controller
    return {"running": controller.is_running, "state": controller.state.value}


@app.get("/api/health")
def health() -> Dict[str, Any]:
    return {"status": "ok", **_running_body()}


@app.get("/api/config", response_model=PipelineConfig)
def read_config() -> PipelineConfig:
    return get_service().get_config()


@app.put("/api/config", response_model=PipelineConfig)
def write_config(payload: ConfigPayload) -> PipelineConfig:
    service = get_service()
    service.save_config(PipelineConfig(**payload.model_dump()))
    return service.get_config()


@app.get("/api/stats", response_model=DashboardStats)
def read_stats() -> DashboardStats:
    return get_service().get_stats()


@app.get("/api/stats/stages", response_model=List[StageSummary])
def read_stage_summary() -> List[StageSummary]:
    return get_service().stage_summary()


@app.get("/api/jobs", response_model=List[Job])
def list_jobs(state: Optional[JobState] = None) -> List[Job]:
    return get_service().store.list_jobs(state)


@app.get("/api/jobs/{job_id}")
def read_job(job_id: int) -> Dict[str, Any]:
    store = get_service().store
    job = store.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="job not found")
    short = store.get_short_for_job(job_id)
    trend = store.get_trend(job.trend_id)
    return {
        "job": job.model_dump(mode="json"),
        "trend": trend.model_dump(mode="json") if trend else None,
        "short": short.model_dump(mode="json") if short else None,
        "metrics": [record.model_dump(mode="json") for record in store.list_metrics(job_id)],
    }


@app.post("/api/probes/trend-source")
async def probe_trend_source(payload: TrendSourceProbePayload) -> Dict[str, bool]:
    return {"ok": await get_service().test_trend_source(payload.api_key)}


@app.post("/api/probes/messaging-bot")
async def probe_messaging_bot(payload: MessagingProbePayload) -> Dict[str, bool]:
    return {"ok": await get_service().test_messaging_bot(payload.token)}


@app.post("/api/probes/inference-endpoint")
async def probe_inference_endpoint(payload: InferenceProbePayload) -> Dict[str, bool]:
    return {"ok": await get_service().test_inference_endpoint(payload.endpoint)}


@app.get("/api/running")
def read_running() -> Dict[str, Any]:
    return _running_body()


@app.post("/api/running")
def write_running(payload: RunningPayload) -> Dict[str, Any]:
    get_service().set_running(payload.running)
    return _running_body()

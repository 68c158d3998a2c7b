"""Outcome announcements through the Telegram Bot API.

Delivery is best-effort: it has its own bounded retry, and a job's state and
attempts are never touched here. The ``notified_at`` marker is set once with a
conditional update, so concurrent notifiers cannot announce a job twice.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import time
from typing import Callable, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from config import NotifierSettings
from core import Job, JobState, NotifyStatus, PipelineConfig, Short, StageName, StageOutcome, Trend
from orchestrator.controller import PipelineController
from storage import PipelineStore
from utils.exceptions import AuthenticationError, NotificationError

from .metrics import MetricsRecorder, elapsed_ms


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.telegram.org"
MESSAGE_LIMIT = 4096


class TelegramClient:
    """Token-authenticated sendMessage client."""

    def __init__(
        self,
        token: str,
        *,
        base_url: Optional[str] = None,
        timeout_s: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.token = str(token or "").strip()
        self.base_url = str(base_url or DEFAULT_BASE_URL).rstrip("/")
        self.timeout_s = float(timeout_s)
        self._transport = transport

    def _url(self, method: str) -> str:
        return f"{self.base_url}/bot{self.token}/{method}"

    async def send_message(self, chat_id: str, text: str) -> None:
        body = {
            "chat_id": chat_id,
            "text": text[:MESSAGE_LIMIT],
            "disable_web_page_preview": True,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                response = await client.post(self._url("sendMessage"), json=body)
        except httpx.TimeoutException as exc:
            raise NotificationError("telegram timeout") from exc
        except httpx.RequestError as exc:
            raise NotificationError(f"telegram request failed: {exc}") from exc

        status = response.status_code
        if status in {401, 403, 404}:
            raise AuthenticationError(f"telegram rejected bot token or chat ({status})", service="telegram")
        if status == 400 and "chat not found" in response.text.lower():
            raise AuthenticationError("telegram chat not found", service="telegram")
        if status >= 400:
            raise NotificationError(f"telegram http {status}: {response.text[:200]}")

        try:
            payload = dict(response.json() or {})
        except ValueError as exc:
            raise NotificationError("telegram returned non-JSON body") from exc
        if not payload.get("ok", False):
            raise NotificationError(f"telegram error: {payload.get('description') or 'unknown'}")


async def probe_telegram_token(
    token: Optional[str],
    *,
    base_url: Optional[str] = None,
    timeout_s: float = 10.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """True when getMe accepts the token."""
    value = str(token or "").strip()
    if not value:
        return False
    url = f"{str(base_url or DEFAULT_BASE_URL).rstrip('/')}/bot{value}/getMe"
    try:
        async with httpx.AsyncClient(timeout=timeout_s, transport=transport) as client:
            response = await client.get(url)
        if not response.is_success:
            return False
        return bool(dict(response.json() or {}).get("ok", False))
    except (httpx.HTTPError, ValueError) as exc:
        logger.info("[Telegram] probe failed: %s", exc)
        return False


def format_message(job: Job, trend: Trend, short: Optional[Short]) -> str:
    if job.state == JobState.COMPLETED:
        lines = [f"Short ready: {trend.title}"]
        if short is not None:
            lines.append(f"Asset: {short.asset_path}")
            if short.duration_sec:
                lines.append(f"Duration: {short.duration_sec:.1f}s")
    else:
        lines = [f"Generation failed: {trend.title}", f"Error: {job.last_error or 'unknown'}"]
    lines.append(f"Attempts: {job.attempt_count}")
    lines.append(f"Trend: https://www.youtube.com/watch?v={trend.id}")
    return "\n".join(lines)


@dataclass
class NotifyReport:
    """Counts for one notifier cycle."""

    sent: int = 0
    gave_up: int = 0
    skipped: bool = False
    halted: bool = False


ClientFactory = Callable[[str], TelegramClient]


class Notifier:
    def __init__(
        self,
        store: PipelineStore,
        controller: PipelineController,
        settings: Optional[NotifierSettings] = None,
        *,
        metrics: Optional[MetricsRecorder] = None,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self._store = store
        self._controller = controller
        self.settings = settings or NotifierSettings()
        self._metrics = metrics or MetricsRecorder(store)
        self._client_factory = client_factory or self._default_client
        self._halted_fingerprint: Optional[str] = None

    def _default_client(self, token: str) -> TelegramClient:
        return TelegramClient(
            token,
            base_url=self.settings.base_url,
            timeout_s=self.settings.request_timeout_secs,
        )

    async def _deliver(self, client: TelegramClient, chat_id: str, text: str) -> None:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(int(self.settings.max_attempts)),
            wait=wait_exponential(
                multiplier=float(self.settings.backoff_base_secs),
                max=float(self.settings.backoff_cap_secs),
            ),
            retry=retry_if_exception_type(NotificationError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                await client.send_message(chat_id, text)

    async def run_once(self, config: Optional[PipelineConfig] = None) -> NotifyReport:
        """Announce a batch of terminal, not-yet-announced jobs."""
        report = NotifyReport()
        if config is None:
            config = await asyncio.to_thread(self._store.get_config)
        if not config.has_messaging:
            report.skipped = True
            return report

        fingerprint = config.fingerprint()
        if self._halted_fingerprint is not None:
            if self._halted_fingerprint == fingerprint:
                report.halted = True
                return report
            self._halted_fingerprint = None

        pending = await asyncio.to_thread(self._store.list_unannounced, limit=self.settings.batch_size)
        if not pending:
            return report

        client = self._client_factory(config.telegram_bot_token)
        for job, trend, short in pending:
            started = time.perf_counter()
            try:
                await self._deliver(client, config.telegram_chat_id, format_message(job, trend, short))
            except AuthenticationError as exc:
                self._halted_fingerprint = fingerprint
                report.halted = True
                logger.warning("notifier_halted error=%s (waiting for config change)", exc)
                break
            except NotificationError as exc:
                await asyncio.to_thread(
                    self._metrics.record, job.id, StageName.NOTIFY, elapsed_ms(started), StageOutcome.FAILURE
                )
                if await asyncio.to_thread(self._store.mark_notified, job.id, NotifyStatus.GAVE_UP):
                    report.gave_up += 1
                logger.warning("notify_gave_up job_id=%s error=%s", job.id, exc)
                continue

            await asyncio.to_thread(
                self._metrics.record, job.id, StageName.NOTIFY, elapsed_ms(started), StageOutcome.SUCCESS
            )
            if await asyncio.to_thread(self._store.mark_notified, job.id, NotifyStatus.SENT):
                report.sent += 1
                logger.info("notify_sent job_id=%s state=%s", job.id, job.state.value)
            else:
                logger.info("notify_already_marked job_id=%s", job.id)
        return report

    async def run(self) -> None:
        logger.info("notifier_loop_start")
        while True:
            if not await self._controller.wait_until_running():
                break
            try:
                await self.run_once()
            except Exception:
                logger.exception("notifier_cycle_crashed")
            if not await self._controller.sleep(float(self.settings.poll_interval_secs)):
                break
        logger.info("notifier_loop_stop")

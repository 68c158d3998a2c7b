"""
Ollama LLM
Local inference endpoint over Ollama's HTTP API (/api/generate, /api/tags).
"""
from typing import List, Optional
import logging

import httpx

from core import DEFAULT_OLLAMA_ENDPOINT
from utils.exceptions import AuthenticationError, InferenceError

from .base import BaseLLM, LLMResponse, Message, MessageRole


logger = logging.getLogger(__name__)


class OllamaLLM(BaseLLM):
    """
    Ollama implementation.

    One request per call; retry policy belongs to the job scheduler, so a
    timeout or 5xx surfaces as ``InferenceError`` right away.
    """

    def __init__(
        self,
        model: str = "llama3.2",
        endpoint: Optional[str] = None,
        temperature: float = 0.7,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs,
    ):
        super().__init__(model, temperature, timeout, **kwargs)
        self.endpoint = str(endpoint or DEFAULT_OLLAMA_ENDPOINT).strip().rstrip("/")
        self._transport = transport

    @property
    def provider(self) -> str:
        return "ollama"

    async def acomplete(self, messages: List[Message], **kwargs) -> LLMResponse:
        system = "\n\n".join(m.content for m in messages if m.role == MessageRole.SYSTEM)
        prompt = "\n\n".join(m.content for m in messages if m.role != MessageRole.SYSTEM)

        body = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": kwargs.get("temperature", self.temperature)},
        }
        if system:
            body["system"] = system

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(f"{self.endpoint}/api/generate", json=body)
        except httpx.TimeoutException as exc:
            raise InferenceError(f"ollama timeout after {self.timeout}s", provider=self.provider) from exc
        except httpx.RequestError as exc:
            raise InferenceError(f"ollama unreachable: {exc}", provider=self.provider) from exc

        if response.status_code in {401, 403}:
            raise AuthenticationError("ollama rejected request", service=self.provider)
        if response.status_code >= 400:
            raise InferenceError(
                f"ollama http {response.status_code}: {response.text[:200]}",
                provider=self.provider,
            )

        try:
            payload = dict(response.json() or {})
        except ValueError as exc:
            raise InferenceError("ollama returned non-JSON body", provider=self.provider) from exc

        if "response" not in payload:
            raise InferenceError("ollama response missing text", provider=self.provider)

        return LLMResponse(
            content=str(payload.get("response") or ""),
            model=str(payload.get("model") or self.model),
            usage={
                "prompt_tokens": int(payload.get("prompt_eval_count") or 0),
                "completion_tokens": int(payload.get("eval_count") or 0),
            },
            finish_reason=payload.get("done_reason"),
            raw_response=payload,
        )

    async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        return await self.achat(prompt, system_prompt=system_prompt)


async def probe_ollama_endpoint(
    endpoint: Optional[str],
    *,
    timeout_s: float = 10.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """True when the endpoint answers its model listing."""
    base = str(endpoint or "").strip().rstrip("/")
    if not base:
        return False
    try:
        async with httpx.AsyncClient(timeout=timeout_s, transport=transport) as client:
            response = await client.get(f"{base}/api/tags")
        return response.is_success
    except httpx.HTTPError as exc:
        logger.info("[Ollama] probe failed endpoint=%s: %s", base, exc)
        return False

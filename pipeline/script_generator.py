"""Stage 1: turn a trend into a narration script through the inference endpoint."""

from __future__ import annotations

import logging
import re
from typing import Callable, Optional

from core import PipelineConfig, Trend
from intelligence.llm import BaseLLM, OllamaLLM


logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You write narration for vertical short-form videos. "
    "Reply with the spoken script only: no title, no stage directions, no hashtags, no markdown."
)

_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.IGNORECASE | re.DOTALL)
_CODE_FENCE = re.compile(r"^```[a-z]*\s*|\s*```$", re.IGNORECASE)
_LABEL_PREFIX = re.compile(r"^\s*(script|narration|voiceover)\s*:\s*", re.IGNORECASE)

LLMFactory = Callable[[PipelineConfig], BaseLLM]


def build_prompt(trend: Trend, *, target_words: int = 120) -> str:
    lines = [
        f"Trending video: {trend.title}",
    ]
    if trend.channel:
        lines.append(f"Channel: {trend.channel}")
    lines.extend(
        [
            "",
            f"Write a punchy narration script of about {int(target_words)} words (under 60 seconds spoken) "
            "explaining why this is trending and what viewers should know.",
            "Open with a hook in the first sentence and end with a one-line call to action.",
        ]
    )
    return "\n".join(lines)


def clean_script(raw: str) -> str:
    text = _THINK_BLOCK.sub("", str(raw or ""))
    text = _CODE_FENCE.sub("", text.strip())
    text = _LABEL_PREFIX.sub("", text)
    return text.strip()


class ScriptGenerator:
    """Builds a client per call so endpoint edits apply on the next job."""

    def __init__(
        self,
        *,
        model: str = "llama3.2",
        temperature: float = 0.7,
        timeout_s: float = 120.0,
        llm_factory: Optional[LLMFactory] = None,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.timeout_s = timeout_s
        self._llm_factory = llm_factory or self._default_factory

    def _default_factory(self, config: PipelineConfig) -> BaseLLM:
        return OllamaLLM(
            model=self.model,
            endpoint=config.ollama_endpoint,
            temperature=self.temperature,
            timeout=self.timeout_s,
        )

    async def generate(self, trend: Trend, config: PipelineConfig) -> str:
        llm = self._llm_factory(config)
        try:
            raw = await llm.achat(build_prompt(trend), system_prompt=SYSTEM_PROMPT)
        finally:
            await llm.aclose()
        script = clean_script(raw)
        logger.info("script_generated trend_id=%s chars=%s", trend.id, len(script))
        return script

"""
LLM Module
Inference client used for script synthesis.
"""
from .base import BaseLLM, LLMResponse, Message, MessageRole
from .ollama_llm import OllamaLLM, probe_ollama_endpoint

__all__ = [
    "BaseLLM",
    "LLMResponse",
    "Message",
    "MessageRole",
    "OllamaLLM",
    "probe_ollama_endpoint",
]

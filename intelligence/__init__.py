"""
Intelligence Module
Inference layer for the script stage.
"""
from .llm import BaseLLM, LLMResponse, Message, OllamaLLM, probe_ollama_endpoint

__all__ = [
    "BaseLLM",
    "LLMResponse",
    "Message",
    "OllamaLLM",
    "probe_ollama_endpoint",
]

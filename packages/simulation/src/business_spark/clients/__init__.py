"""LLM client implementations for turn generation."""

from business_spark.clients.claude import ClaudeClient, ClaudeResponse
from business_spark.clients.gemini import GeminiClient, GeminiResponse
from business_spark.clients.ollama import OllamaClient, OllamaResponse

__all__ = [
    "ClaudeClient",
    "ClaudeResponse",
    "GeminiClient",
    "GeminiResponse",
    "OllamaClient",
    "OllamaResponse",
]

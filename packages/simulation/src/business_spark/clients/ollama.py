"""Ollama client for running turns against a local model."""

from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from business_spark.config import get_settings

logger = structlog.get_logger(__name__)


@dataclass
class OllamaResponse:
    """Response from Ollama API."""

    content: str
    stop_reason: str
    usage: dict[str, int]


class OllamaClient:
    """Client for Ollama's local /api/chat endpoint.

    Ollama's ``format: "json"`` option constrains output to valid JSON,
    which lets a local model stand in for the cloud providers.
    """

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        settings = get_settings()
        self._base_url = (base_url or settings.ollama_base_url).rstrip("/")
        self._model = model or settings.ollama_model
        self._max_tokens = max_tokens or settings.llm_max_tokens
        self._temperature = temperature or settings.llm_temperature

        self._client = http_client or httpx.AsyncClient(timeout=120.0)  # Local models can be slow
        self._logger = logger.bind(client="ollama", model=self._model)

    def _convert_messages_to_ollama_format(
        self, system_prompt: str, messages: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Convert conversation history to Ollama's message format."""
        ollama_messages = [{"role": "system", "content": system_prompt}]
        for msg in messages:
            ollama_messages.append({
                "role": "assistant" if msg["role"] == "assistant" else "user",
                # Ollama requires content to always be present
                "content": msg.get("content") or "",
            })
        return ollama_messages

    def _parse_response(self, response_data: dict[str, Any]) -> OllamaResponse:
        """Parse Ollama response into our format."""
        message = response_data.get("message", {})

        done_reason = response_data.get("done_reason", "")
        stop_reason = "max_tokens" if done_reason == "length" else "end_turn"

        return OllamaResponse(
            content=message.get("content", ""),
            stop_reason=stop_reason,
            usage={
                "input_tokens": response_data.get("prompt_eval_count", 0),
                "output_tokens": response_data.get("eval_count", 0),
            },
        )

    async def generate(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        json_response: bool = True,
    ) -> OllamaResponse:
        """Generate a response from the local Ollama model.

        Args:
            system_prompt: Instructions describing the game engine's role.
            messages: Conversation as a list of {"role", "content"} dicts.
            json_response: Constrain the output to JSON.

        Returns:
            OllamaResponse with content and usage info.
        """
        self._logger.debug("generating_response", message_count=len(messages))

        payload: dict[str, Any] = {
            "model": self._model,
            "messages": self._convert_messages_to_ollama_format(system_prompt, messages),
            "stream": False,
            "options": {
                "num_predict": self._max_tokens,
                "temperature": self._temperature,
            },
        }
        if json_response:
            payload["format"] = "json"

        try:
            response = await self._client.post(f"{self._base_url}/api/chat", json=payload)
            response.raise_for_status()
            parsed = self._parse_response(response.json())

            self._logger.info(
                "response_generated",
                stop_reason=parsed.stop_reason,
                input_tokens=parsed.usage["input_tokens"],
                output_tokens=parsed.usage["output_tokens"],
            )
            return parsed

        except httpx.HTTPStatusError as e:
            self._logger.error("api_error", status=e.response.status_code, error=str(e))
            raise
        except httpx.RequestError as e:
            self._logger.error("connection_error", error=str(e))
            raise

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

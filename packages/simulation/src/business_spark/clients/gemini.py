"""Google Gemini client for JSON turn generation.

Uses the google-genai SDK (v1.0+) through its async interface so a turn
timeout or cancellation actually interrupts the request.
"""

from dataclasses import dataclass
from typing import Any

import structlog
from google import genai
from google.genai import types

from business_spark.config import get_settings

logger = structlog.get_logger(__name__)


@dataclass
class GeminiResponse:
    """Response from Gemini API."""

    content: str
    stop_reason: str
    usage: dict[str, int]


class GeminiClient:
    """Client for Google's Gemini API."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ):
        settings = get_settings()
        self._api_key = api_key or settings.google_api_key.get_secret_value()
        self._model_name = model or settings.gemini_model
        self._max_tokens = max_tokens or settings.llm_max_tokens
        self._temperature = temperature or settings.llm_temperature

        self._client = genai.Client(api_key=self._api_key)

        self._logger = logger.bind(client="gemini", model=self._model_name)

    def _convert_messages_to_gemini_format(
        self, messages: list[dict[str, Any]]
    ) -> list[types.Content]:
        """Convert conversation history to Gemini's content format."""
        return [
            types.Content(
                role="model" if msg["role"] == "assistant" else "user",
                parts=[types.Part(text=msg["content"])],
            )
            for msg in messages
            if msg.get("content")
        ]

    def _parse_response(self, response: Any) -> GeminiResponse:
        """Parse Gemini response into our format."""
        content = ""
        stop_reason = "end_turn"

        if response.candidates:
            candidate = response.candidates[0]
            if candidate.content and candidate.content.parts:
                content = "".join(part.text for part in candidate.content.parts if part.text)

            stop_reason_map = {
                "STOP": "end_turn",
                "MAX_TOKENS": "max_tokens",
                "SAFETY": "content_filter",
                "RECITATION": "content_filter",
            }
            finish_reason = getattr(candidate.finish_reason, "value", candidate.finish_reason)
            stop_reason = stop_reason_map.get(str(finish_reason), "end_turn")

        usage = {"input_tokens": 0, "output_tokens": 0}
        if getattr(response, "usage_metadata", None):
            usage["input_tokens"] = (
                getattr(response.usage_metadata, "prompt_token_count", 0) or 0
            )
            usage["output_tokens"] = (
                getattr(response.usage_metadata, "candidates_token_count", 0) or 0
            )

        return GeminiResponse(content=content, stop_reason=stop_reason, usage=usage)

    async def generate(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        json_response: bool = True,
    ) -> GeminiResponse:
        """Generate a response from Gemini.

        Args:
            system_prompt: Instructions describing the game engine's role.
            messages: Conversation as a list of {"role", "content"} dicts.
            json_response: Ask the model for a JSON-only response.

        Returns:
            GeminiResponse with content and usage info.
        """
        self._logger.debug("generating_response", message_count=len(messages))

        config = types.GenerateContentConfig(
            max_output_tokens=self._max_tokens,
            temperature=self._temperature,
            system_instruction=system_prompt,
        )
        if json_response:
            config.response_mime_type = "application/json"

        try:
            response = await self._client.aio.models.generate_content(
                model=self._model_name,
                contents=self._convert_messages_to_gemini_format(messages),
                config=config,
            )
            parsed = self._parse_response(response)

            self._logger.info(
                "response_generated",
                stop_reason=parsed.stop_reason,
                input_tokens=parsed.usage["input_tokens"],
                output_tokens=parsed.usage["output_tokens"],
            )
            return parsed

        except Exception as e:
            self._logger.error("api_error", error=str(e))
            raise

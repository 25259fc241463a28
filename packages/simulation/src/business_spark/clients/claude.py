"""Claude (Anthropic) client for JSON turn generation."""

from dataclasses import dataclass
from typing import Any

import anthropic
import structlog

from business_spark.config import get_settings

logger = structlog.get_logger(__name__)

JSON_ONLY_INSTRUCTION = "Respond with a single JSON object and nothing else."


@dataclass
class ClaudeResponse:
    """Response from Claude API."""

    content: str
    stop_reason: str
    usage: dict[str, int]


class ClaudeClient:
    """Client for Anthropic's Claude API."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ):
        settings = get_settings()
        self._api_key = api_key or settings.anthropic_api_key.get_secret_value()
        self._model = model or settings.claude_model
        self._max_tokens = max_tokens or settings.llm_max_tokens
        self._temperature = temperature or settings.llm_temperature

        self._client = anthropic.AsyncAnthropic(api_key=self._api_key)
        self._logger = logger.bind(client="claude", model=self._model)

    def _convert_messages_to_anthropic_format(
        self, messages: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Convert conversation history to Anthropic's message format."""
        return [
            {
                "role": "assistant" if msg["role"] == "assistant" else "user",
                "content": msg["content"],
            }
            for msg in messages
            if msg.get("content")
        ]

    def _parse_response(self, response: anthropic.types.Message) -> ClaudeResponse:
        """Parse Anthropic response into our format."""
        content = "".join(block.text for block in response.content if block.type == "text")

        return ClaudeResponse(
            content=content,
            stop_reason=response.stop_reason or "end_turn",
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
        )

    async def generate(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        json_response: bool = True,
    ) -> ClaudeResponse:
        """Generate a response from Claude.

        Args:
            system_prompt: Instructions describing the game engine's role.
            messages: Conversation as a list of {"role", "content"} dicts.
            json_response: Append a JSON-only instruction to the system prompt.

        Returns:
            ClaudeResponse with content and usage info.
        """
        self._logger.debug("generating_response", message_count=len(messages))

        system = f"{system_prompt}\n\n{JSON_ONLY_INSTRUCTION}" if json_response else system_prompt

        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                system=system,
                messages=self._convert_messages_to_anthropic_format(messages),
            )
            parsed = self._parse_response(response)

            self._logger.info(
                "response_generated",
                stop_reason=parsed.stop_reason,
                input_tokens=parsed.usage["input_tokens"],
                output_tokens=parsed.usage["output_tokens"],
            )
            return parsed

        except anthropic.APIError as e:
            self._logger.error("api_error", error=str(e))
            raise

# src/promptcraft/llm/anthropic_backend.py
from __future__ import annotations

from typing import Optional

from anthropic import AsyncAnthropic, BadRequestError

from promptcraft.context.turns import strict_format
from .base import Completion, ConfigurationError, ContextLengthExceeded, ModelBackend
from .keys import get_key


class ClaudeBackend(ModelBackend):
    """
    Adapter for Anthropic's Claude models.

    The system prompt travels in the native ``system`` field; turns are
    strictly alternated because the Messages API rejects anything else.
    """

    api = "anthropic"

    def __init__(
        self,
        model: Optional[str] = None,
        url: Optional[str] = None,
        *,
        max_tokens: Optional[int] = None,
    ):
        super().__init__(model or "claude-3-5-sonnet-latest", url)
        self.max_tokens = max_tokens or 4096
        api_key = get_key("ANTHROPIC_API_KEY")
        if not api_key:
            raise ConfigurationError("anthropic backend needs ANTHROPIC_API_KEY")
        self._client = AsyncAnthropic(api_key=api_key, base_url=url)

    async def aclose(self) -> None:
        await self._client.close()

    async def _complete(self, turns, system_prompt, stop_seq) -> Completion:
        pack = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system_prompt,
            "messages": strict_format(turns),
        }
        # the API rejects whitespace-only stop sequences
        if stop_seq.strip():
            pack["stop_sequences"] = [stop_seq]
        try:
            response = await self._client.messages.create(**pack)
        except BadRequestError as exc:
            if "prompt is too long" in str(exc):
                raise ContextLengthExceeded(str(exc)) from exc
            raise

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        return Completion(
            text=text,
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
        )

# src/promptcraft/llm/base.py
from __future__ import annotations

import hashlib, logging, time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import tiktoken

from promptcraft.audit.llm_call_log import LLMCallLogger

logger = logging.getLogger("promptcraft.llm.base")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s %(message)s"))
    logger.addHandler(h)
logger.setLevel(logging.INFO)

PLACEHOLDER_RESPONSE = "My brain disconnected, try again."
DEFAULT_STOP_SEQ = "***"


class ConfigurationError(ValueError):
    """Profile or backend selection is unusable; fatal at construction."""


class ContextLengthExceeded(RuntimeError):
    """Raised by a provider when the prompt no longer fits its context window."""


@dataclass
class Completion:
    text: str
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None


@dataclass
class RequestStats:
    """Rolling latency/token figures. Diagnostics only, never read by control flow."""
    response_times: List[float] = field(default_factory=list)
    context_lengths: List[int] = field(default_factory=list)
    top_response_time: float = 0.0
    top_context_length: int = 0

    def record(self, latency: float, total_tokens: int) -> None:
        self.response_times.append(latency)
        self.context_lengths.append(total_tokens)
        self.top_response_time = max(self.top_response_time, latency)
        self.top_context_length = max(self.top_context_length, total_tokens)

    @property
    def avg_response_time(self) -> float:
        if not self.response_times:
            return 0.0
        return sum(self.response_times) / len(self.response_times)

    @property
    def avg_context_length(self) -> float:
        if not self.context_lengths:
            return 0.0
        return sum(self.context_lengths) / len(self.context_lengths)


def _count_tokens(messages: Sequence[Dict[str, str]]) -> Optional[int]:
    """Approximate prompt size; ``None`` when the encoding cannot be loaded."""
    try:
        enc = tiktoken.get_encoding("o200k_base")
    except Exception as exc:  # noqa: BLE001
        logger.debug("token encoding unavailable: %s", exc)
        return None
    return sum(
        len(enc.encode(m["role"], disallowed_special=())) +
        len(enc.encode(m["content"], disallowed_special=()))
        for m in messages
    )


def with_system(turns: Sequence[Dict[str, str]], system_prompt: str) -> List[Dict[str, str]]:
    return [{"role": "system", "content": system_prompt}] + [dict(t) for t in turns]


class ModelBackend(ABC):
    """
    Uniform capability interface over one provider family.

    Subclasses implement ``_complete`` (and ``_embed`` when
    ``supports_embedding``); they raise ``ContextLengthExceeded`` when the
    provider reports an overflow and may raise anything else on transport
    failure.  ``send_request`` owns the recovery policy so callers only ever
    see text.
    """

    api: str = "base"
    supports_embedding: bool = False

    def __init__(self, model: Optional[str] = None, url: Optional[str] = None):
        self.model = model
        self.url = url
        self.stats = RequestStats()

    # ------------------------------------------------------------------ #
    @abstractmethod
    async def _complete(
        self,
        turns: List[Dict[str, str]],
        system_prompt: str,
        stop_seq: str,
    ) -> Completion: ...

    async def _embed(self, text: str) -> List[float]:
        raise NotImplementedError(f"{self.api} backend does not provide embeddings")

    # ------------------------------------------------------------------ #
    async def send_request(
        self,
        turns: Sequence[Dict[str, str]],
        system_prompt: str,
        stop_seq: str = DEFAULT_STOP_SEQ,
    ) -> str:
        remaining = [dict(t) for t in turns]
        while True:
            t0 = time.perf_counter()
            try:
                result = await self._complete(remaining, system_prompt, stop_seq)
            except ContextLengthExceeded:
                if len(remaining) > 1:
                    logger.info("Context length exceeded, trying again with shorter context.")
                    remaining = remaining[1:]
                    continue
                logger.warning("%s context length exceeded with %d turn(s) left",
                               self.api, len(remaining))
                self._audit(remaining, system_prompt, None, time.perf_counter() - t0, "context_length")
                return PLACEHOLDER_RESPONSE
            except Exception as exc:  # noqa: BLE001
                logger.error("%s request failed: %s", self.api, exc)
                self._audit(remaining, system_prompt, None, time.perf_counter() - t0, "error")
                return PLACEHOLDER_RESPONSE

            latency = time.perf_counter() - t0
            self._audit(remaining, system_prompt, result, latency, "ok")
            return result.text

    async def embed(self, text: str) -> List[float]:
        return await self._embed(text)

    async def aclose(self) -> None:
        """Release the provider client's connections. Safe to call twice."""

    # ------------------------------------------------------------------ #
    def _audit(
        self,
        turns: List[Dict[str, str]],
        system_prompt: str,
        result: Optional[Completion],
        latency: float,
        outcome: str,
    ) -> None:
        """Stats line + JSONL record.  Failures here are logged, never raised."""
        try:
            self._record(turns, system_prompt, result, latency, outcome)
        except Exception as exc:  # noqa: BLE001
            logger.warning("%s request diagnostics failed: %s", self.api, exc)

    def _record(
        self,
        turns: List[Dict[str, str]],
        system_prompt: str,
        result: Optional[Completion],
        latency: float,
        outcome: str,
    ) -> None:
        prompt_tokens = completion_tokens = None
        content = ""
        if result is not None:
            content = result.text
            prompt_tokens = result.prompt_tokens
            if prompt_tokens is None:
                prompt_tokens = _count_tokens(with_system(turns, system_prompt))
            completion_tokens = result.completion_tokens or 0
            self.stats.record(latency, (prompt_tokens or 0) + completion_tokens)
            logger.info(
                "%s %s → %.2fs (avg %.2fs, top %.2fs)  prompt≈%s  completion≈%d  "
                "context avg %.0f top %d",
                self.api,
                self.model,
                latency,
                self.stats.avg_response_time,
                self.stats.top_response_time,
                prompt_tokens if prompt_tokens is not None else "?",
                completion_tokens,
                self.stats.avg_context_length,
                self.stats.top_context_length,
            )

        LLMCallLogger().log({
            "ts": time.time(),
            "backend": type(self).__name__,
            "api": self.api,
            "model": self.model,
            "turns": len(turns),
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "latency_s": latency,
            "outcome": outcome,
            "result_sha": hashlib.sha1(content.encode()).hexdigest(),
        })

# src/promptcraft/llm/registry.py
"""
Single place to turn a model descriptor into a backend.

Avoids hard-coding provider classes throughout the codebase.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Type

from promptcraft.agents.profile import Api, ModelDescriptor
from .anthropic_backend import ClaudeBackend
from .base import ConfigurationError, ModelBackend
from .ollama_backend import LocalBackend
from .openai_compat import (
    DeepSeekBackend,
    GeminiBackend,
    GPTBackend,
    GrokBackend,
    GroqBackend,
    HuggingFaceBackend,
    NovitaBackend,
    OobaBackend,
    QwenBackend,
    TabbyBackend,
)
from .replicate_backend import ReplicateBackend

logger = logging.getLogger("promptcraft.llm.registry")

BACKENDS: Dict[Api, Type[ModelBackend]] = {
    Api.GOOGLE: GeminiBackend,
    Api.OPENAI: GPTBackend,
    Api.ANTHROPIC: ClaudeBackend,
    Api.REPLICATE: ReplicateBackend,
    Api.OLLAMA: LocalBackend,
    Api.GROQ: GroqBackend,
    Api.HUGGINGFACE: HuggingFaceBackend,
    Api.NOVITA: NovitaBackend,
    Api.QWEN: QwenBackend,
    Api.XAI: GrokBackend,
    Api.DEEPSEEK: DeepSeekBackend,
    Api.TABBY: TabbyBackend,
    Api.OOBA: OobaBackend,
}


def create_backend(descriptor: ModelDescriptor, max_tokens: Optional[int] = None) -> ModelBackend:
    """
    Instantiate the chat backend for ``descriptor``.

    Example:
        backend = create_backend(ModelDescriptor.resolve("gpt-4o"))
    """
    try:
        cls = BACKENDS[Api(descriptor.api)]
    except (KeyError, ValueError):
        raise ConfigurationError(
            f"Unknown API '{descriptor.api}'. Valid: {[a.value for a in BACKENDS]}"
        ) from None
    return cls(descriptor.model, descriptor.url, max_tokens=max_tokens)


def create_summary_backend(summary: Optional[ModelDescriptor],
                           chat_backend: ModelBackend) -> ModelBackend:
    """Only ooba gets a dedicated summariser; everything else reuses the chat backend."""
    if summary is not None and summary.api == Api.OOBA:
        return create_backend(summary)
    return chat_backend


def resolve_embedding(embedding: Any, chat: ModelDescriptor) -> Dict[str, Any]:
    if embedding is None:
        return {"api": chat.api.value if chat.api != Api.OLLAMA else "none"}
    if isinstance(embedding, str):
        return {"api": embedding}
    return dict(embedding)


def create_embedding_backend(embedding: Any, chat: ModelDescriptor) -> Optional[ModelBackend]:
    """
    Pick the embedding backend, or ``None`` when the configured api cannot
    embed or fails to initialise.  Example selection then falls back to
    word overlap.
    """
    settings = resolve_embedding(embedding, chat)
    logger.info("Using embedding settings: %s", settings)
    try:
        cls = BACKENDS[Api(settings.get("api"))]
    except (KeyError, ValueError):
        logger.info("Unknown embedding: %s. Using word overlap.", settings.get("api") or "[NOT SPECIFIED]")
        return None
    if not cls.supports_embedding:
        logger.info("%s has no embedding support. Using word overlap.", settings["api"])
        return None
    try:
        return cls(settings.get("model"), settings.get("url"))
    except ConfigurationError as exc:
        logger.warning("Failed to initialize embedding model: %s. Using word overlap.", exc)
        return None

# src/promptcraft/llm/ollama_backend.py
from __future__ import annotations

from typing import List, Optional

from ollama import AsyncClient, ResponseError

from .base import Completion, ContextLengthExceeded, ModelBackend, with_system


class LocalBackend(ModelBackend):
    """Local inference through an Ollama server."""

    api = "ollama"
    supports_embedding = True
    default_embedding_model = "nomic-embed-text"

    def __init__(self, model: Optional[str] = None, url: Optional[str] = None, **_kwargs):
        super().__init__(model or "llama3", url or "http://127.0.0.1:11434")
        self.embedding_model = model or self.default_embedding_model
        self._client = AsyncClient(host=self.url)

    async def _complete(self, turns, system_prompt, stop_seq) -> Completion:
        try:
            response = await self._client.chat(
                model=self.model,
                messages=with_system(turns, system_prompt),
                options={"stop": [stop_seq]},
            )
        except ResponseError as exc:
            if "context length" in str(exc).lower():
                raise ContextLengthExceeded(str(exc)) from exc
            raise

        return Completion(
            text=response["message"]["content"] or "",
            prompt_tokens=response.get("prompt_eval_count"),
            completion_tokens=response.get("eval_count"),
        )

    async def _embed(self, text: str) -> List[float]:
        response = await self._client.embed(model=self.embedding_model, input=text)
        return list(response["embeddings"][0])

# src/promptcraft/llm/replicate_backend.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from promptcraft.context.turns import to_single_prompt
from .base import Completion, ConfigurationError, ContextLengthExceeded, ModelBackend
from .keys import get_key

_API_BASE = "https://api.replicate.com/v1"
_EMBEDDING_MODEL = "mark3labs/embeddings-gte-base"


class ReplicateBackend(ModelBackend):
    """
    Completion-style models hosted on Replicate.  Chats are flattened into a
    single prompt; the prediction is awaited synchronously via ``Prefer: wait``.
    """

    api = "replicate"
    supports_embedding = True

    def __init__(self, model: Optional[str] = None, url: Optional[str] = None, **_kwargs):
        if model:
            model = model.replace("replicate/", "")
        super().__init__(model or "meta/meta-llama-3-70b-instruct", url or _API_BASE)
        token = get_key("REPLICATE_API_KEY")
        if not token:
            raise ConfigurationError("replicate backend needs REPLICATE_API_KEY")
        self._client = httpx.AsyncClient(
            base_url=self.url,
            headers={"Authorization": f"Bearer {token}", "Prefer": "wait"},
            timeout=120.0,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _predict(self, model: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        resp = await self._client.post(f"/models/{model}/predictions", json={"input": payload})
        resp.raise_for_status()
        data = resp.json()
        if data.get("status") == "failed":
            error = str(data.get("error") or "prediction failed")
            if "context" in error.lower() and "length" in error.lower():
                raise ContextLengthExceeded(error)
            raise RuntimeError(error)
        return data

    async def _complete(self, turns, system_prompt, stop_seq) -> Completion:
        prompt = to_single_prompt(turns, None, stop_seq)
        data = await self._predict(self.model, {
            "prompt": prompt,
            "system_prompt": system_prompt,
            "stop_sequences": stop_seq,
        })
        output = data.get("output") or []
        text = "".join(output) if isinstance(output, list) else str(output)
        metrics = data.get("metrics") or {}
        return Completion(
            text=text,
            prompt_tokens=metrics.get("input_token_count"),
            completion_tokens=metrics.get("output_token_count"),
        )

    async def _embed(self, text: str) -> List[float]:
        data = await self._predict(_EMBEDDING_MODEL, {"text": text})
        return data["output"]["vectors"]

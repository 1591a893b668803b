# src/promptcraft/llm/openai_compat.py
"""
Backends for every provider that speaks the OpenAI chat-completions wire
format.  Each subclass only pins its endpoint, credential name and model
naming quirks; marshaling and error mapping live in the shared base.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple, cast

from openai import AsyncOpenAI, BadRequestError
from openai.types.chat import ChatCompletionMessageParam

from .base import (
    Completion,
    ConfigurationError,
    ContextLengthExceeded,
    ModelBackend,
    with_system,
)
from .keys import get_key


class OpenAICompatBackend(ModelBackend):
    api = "openai"
    key_name: Optional[str] = "OPENAI_API_KEY"
    default_url: Optional[str] = None
    default_model: str = "gpt-4o-mini"
    default_embedding_model: Optional[str] = None
    strip_prefixes: Tuple[str, ...] = ()

    def __init__(
        self,
        model: Optional[str] = None,
        url: Optional[str] = None,
        *,
        max_tokens: Optional[int] = None,
    ):
        for prefix in self.strip_prefixes:
            if model:
                model = model.replace(prefix, "")
        super().__init__(model, url)
        self.max_tokens = max_tokens

        api_key = None
        if self.key_name:
            api_key = get_key(self.key_name)
            if not api_key:
                raise ConfigurationError(
                    f"{self.api} backend needs {self.key_name} in the environment or keys.json"
                )
        self._client = AsyncOpenAI(
            # local servers accept any token
            api_key=api_key or "no-key",
            base_url=url or self.default_url,
        )

    async def aclose(self) -> None:
        await self._client.close()

    # ------------------------------------------------------------------ #
    def _build_pack(self, turns: List[Dict[str, str]], system_prompt: str,
                    stop_seq: str) -> Dict[str, Any]:
        pack: Dict[str, Any] = {
            "model": self.model or self.default_model,
            "messages": cast(List[ChatCompletionMessageParam],
                             with_system(turns, system_prompt)),
            "stop": stop_seq,
        }
        if self.max_tokens:
            pack["max_tokens"] = self.max_tokens
        return pack

    async def _complete(self, turns, system_prompt, stop_seq) -> Completion:
        pack = self._build_pack(turns, system_prompt, stop_seq)
        try:
            completion = await self._client.chat.completions.create(**pack)
        except BadRequestError as exc:
            if getattr(exc, "code", None) == "context_length_exceeded":
                raise ContextLengthExceeded(str(exc)) from exc
            raise

        choice = completion.choices[0]
        if choice.finish_reason == "length":
            raise ContextLengthExceeded("Context length exceeded")
        usage = completion.usage
        return Completion(
            text=choice.message.content or "",
            prompt_tokens=getattr(usage, "prompt_tokens", None),
            completion_tokens=getattr(usage, "completion_tokens", None),
        )

    async def _embed(self, text: str) -> List[float]:
        if not self.supports_embedding:
            return await super()._embed(text)
        embedding = await self._client.embeddings.create(
            model=self.model or self.default_embedding_model,
            input=text,
            encoding_format="float",
        )
        return embedding.data[0].embedding


class GPTBackend(OpenAICompatBackend):
    api = "openai"
    supports_embedding = True
    default_embedding_model = "text-embedding-3-small"

    def _build_pack(self, turns, system_prompt, stop_seq):
        pack = super()._build_pack(turns, system_prompt, stop_seq)
        # o1 models reject system turns and stop sequences
        if "o1" in pack["model"]:
            pack["messages"] = [
                {"role": "user" if m["role"] == "system" else m["role"],
                 "content": m["content"]}
                for m in pack["messages"]
            ]
            pack.pop("stop", None)
        return pack


class GeminiBackend(OpenAICompatBackend):
    api = "google"
    key_name = "GEMINI_API_KEY"
    default_url = "https://generativelanguage.googleapis.com/v1beta/openai/"
    default_model = "gemini-1.5-flash"
    supports_embedding = True
    default_embedding_model = "text-embedding-004"


class GroqBackend(OpenAICompatBackend):
    api = "groq"
    key_name = "GROQCLOUD_API_KEY"
    default_url = "https://api.groq.com/openai/v1"
    default_model = "llama3-70b-8192"
    strip_prefixes = ("groq/", "groqcloud/")

    def __init__(self, model=None, url=None, *, max_tokens=None):
        super().__init__(model, url, max_tokens=max_tokens or 8192)


class HuggingFaceBackend(OpenAICompatBackend):
    api = "huggingface"
    key_name = "HUGGINGFACE_API_KEY"
    default_url = "https://router.huggingface.co/v1"
    default_model = "meta-llama/Meta-Llama-3-8B-Instruct"
    strip_prefixes = ("huggingface/",)


class NovitaBackend(OpenAICompatBackend):
    api = "novita"
    key_name = "NOVITA_API_KEY"
    default_url = "https://api.novita.ai/v3/openai"
    default_model = "meta-llama/llama-3.1-70b-instruct"
    strip_prefixes = ("novita/",)


class QwenBackend(OpenAICompatBackend):
    api = "qwen"
    key_name = "QWEN_API_KEY"
    default_url = "https://dashscope-intl.aliyuncs.com/compatible-mode/v1"
    default_model = "qwen-plus"
    supports_embedding = True
    default_embedding_model = "text-embedding-v3"


class GrokBackend(OpenAICompatBackend):
    api = "xai"
    key_name = "XAI_API_KEY"
    default_url = "https://api.x.ai/v1"
    default_model = "grok-beta"


class DeepSeekBackend(OpenAICompatBackend):
    api = "deepseek"
    key_name = "DEEPSEEK_API_KEY"
    default_url = "https://api.deepseek.com"
    default_model = "deepseek-chat"


class TabbyBackend(OpenAICompatBackend):
    api = "tabby"
    key_name = None
    default_url = "http://127.0.0.1:5000/v1"
    default_model = "Meta-Llama-3-8B"
    supports_embedding = True
    default_embedding_model = "text-embedding-3-large"

    def __init__(self, model=None, url=None, *, max_tokens=None):
        super().__init__(model, url, max_tokens=max_tokens)
        token = get_key("TABBY_API_KEY")
        if token:
            self._client = AsyncOpenAI(api_key=token, base_url=url or self.default_url)


class OobaBackend(OpenAICompatBackend):
    api = "ooba"
    key_name = None
    default_url = "http://127.0.0.1:5000/v1"
    default_model = "local-model"

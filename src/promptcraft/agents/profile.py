# src/promptcraft/agents/profile.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from promptcraft.llm.base import ConfigurationError

logger = logging.getLogger("promptcraft.agents.profile")

DEFAULT_PROFILE_PATH = Path("profiles/_default.json")


class Api(str, Enum):
    GOOGLE = "google"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    HUGGINGFACE = "huggingface"
    REPLICATE = "replicate"
    GROQ = "groq"
    NOVITA = "novita"
    QWEN = "qwen"
    XAI = "xai"
    DEEPSEEK = "deepseek"
    TABBY = "tabby"
    OOBA = "ooba"
    OLLAMA = "ollama"


# first match wins; "huggingface/" must precede "meta/"
_API_PATTERNS: Tuple[Tuple[Tuple[str, ...], Api], ...] = (
    (("gemini",), Api.GOOGLE),
    (("gpt", "o1"), Api.OPENAI),
    (("claude",), Api.ANTHROPIC),
    (("huggingface/",), Api.HUGGINGFACE),
    (("meta/", "mistralai/", "replicate/"), Api.REPLICATE),
    (("groq/", "groqcloud/"), Api.GROQ),
    (("novita/",), Api.NOVITA),
    (("qwen",), Api.QWEN),
    (("grok",), Api.XAI),
    (("deepseek",), Api.DEEPSEEK),
    (("tabby",), Api.TABBY),
    (("ooba",), Api.OOBA),
)


def infer_api(model_name: str) -> Api:
    """Map a bare model name to its provider family. Never raises."""
    for needles, api in _API_PATTERNS:
        if any(n in model_name for n in needles):
            return api
    return Api.OLLAMA


@dataclass(frozen=True, slots=True)
class ModelDescriptor:
    model: Optional[str]
    api: Api
    url: Optional[str] = None

    @classmethod
    def resolve(cls, setting: Union[str, Mapping[str, Any], "ModelDescriptor"]) -> "ModelDescriptor":
        """Accept a bare model name or a ``{model, api, url}`` mapping."""
        if isinstance(setting, ModelDescriptor):
            return setting
        if isinstance(setting, str):
            return cls(model=setting, api=infer_api(setting))
        if not isinstance(setting, Mapping):
            raise ConfigurationError(f"Unusable model setting: {setting!r}")

        model = setting.get("model")
        api = setting.get("api")
        if api is None:
            if not model:
                raise ConfigurationError(f"Model setting names neither model nor api: {setting!r}")
            api = infer_api(model)
        try:
            api = Api(api)
        except ValueError:
            raise ConfigurationError(f"Unknown API: {api!r}") from None
        return cls(model=model, api=api, url=setting.get("url"))

    def as_dict(self) -> Dict[str, Any]:
        return {"model": self.model, "api": self.api.value, "url": self.url}


def merge_profile(profile: Mapping[str, Any], default: Mapping[str, Any]) -> Dict[str, Any]:
    """Backfill keys absent from ``profile`` with the default's values (one level deep)."""
    merged = dict(profile)
    for key, value in default.items():
        if key not in merged:
            merged[key] = value
    return merged


@dataclass(frozen=True, slots=True)
class AgentProfile:
    """
    Immutable, merged configuration of one agent.

    ``raw`` keeps the merged document so that it can be written back out
    verbatim as the audit copy.
    """
    name: str
    model: ModelDescriptor
    conversing: str = ""
    coding: str = ""
    saving_memory: str = ""
    bot_responder: str = ""
    goal_setting: str = ""
    cooldown: int = 0                      # milliseconds
    summary_model: Optional[ModelDescriptor] = None
    embedding: Any = None
    roles: Tuple[str, ...] = ()
    max_tokens: Optional[int] = None
    modes: Dict[str, Any] = field(default_factory=dict)
    conversation_examples: List[Any] = field(default_factory=list)
    coding_examples: List[Any] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def cooldown_seconds(self) -> float:
        return max(self.cooldown, 0) / 1000.0

    @property
    def first_role(self) -> Optional[str]:
        return self.roles[0] if self.roles else None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AgentProfile":
        if not data.get("name"):
            raise ConfigurationError("Profile must define a name")
        if not data.get("model"):
            raise ConfigurationError(f"Profile {data['name']!r} must define a model")

        summary = data.get("summary_model")
        roles = data.get("roles") or ()
        if isinstance(roles, str):
            roles = (roles,)
        try:
            cooldown = int(data.get("cooldown") or 0)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid cooldown: {data.get('cooldown')!r}") from None

        return cls(
            name=data["name"],
            model=ModelDescriptor.resolve(data["model"]),
            conversing=data.get("conversing") or "",
            coding=data.get("coding") or "",
            saving_memory=data.get("saving_memory") or "",
            bot_responder=data.get("bot_responder") or "",
            goal_setting=data.get("goal_setting") or "",
            cooldown=cooldown,
            summary_model=ModelDescriptor.resolve(summary) if summary else None,
            embedding=data.get("embedding"),
            roles=tuple(roles),
            max_tokens=data.get("max_tokens") or None,
            modes=dict(data.get("modes") or {}),
            conversation_examples=list(data.get("conversation_examples") or []),
            coding_examples=list(data.get("coding_examples") or []),
            raw=dict(data),
        )


# --------------------------------------------------------------------------- #
# Persistence
# --------------------------------------------------------------------------- #
def _read_json(path: Path) -> Dict[str, Any]:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Unreadable profile {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Profile {path} must be a JSON object")
    return data


def load_profile(path: Union[str, Path],
                 default_path: Union[str, Path, None] = None) -> AgentProfile:
    """Read an agent profile and backfill it from the default profile."""
    profile = _read_json(Path(path))
    default = _read_json(Path(default_path or DEFAULT_PROFILE_PATH))
    return AgentProfile.from_dict(merge_profile(profile, default))


def save_profile_copy(profile: AgentProfile, bots_dir: Union[str, Path] = "bots") -> Path:
    """Write the merged profile to ``<bots_dir>/<name>/last_profile.json``."""
    out_dir = Path(bots_dir) / profile.name
    out_dir.mkdir(parents=True, exist_ok=True)
    out = out_dir / "last_profile.json"
    out.write_text(json.dumps(profile.raw, indent=4, ensure_ascii=False), encoding="utf-8")
    logger.info("Copy profile saved to %s", out)
    return out

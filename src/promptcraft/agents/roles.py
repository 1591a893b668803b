# src/promptcraft/agents/roles.py
"""
Role configuration: one JSON document per role in the roles directory,
read on first use and cached for the life of the process.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger("promptcraft.agents.roles")

_ROLE_MAP: Optional[Dict[str, "RoleConfig"]] = None


def roles_dir() -> Path:
    return Path(os.getenv("PROMPTCRAFT_ROLES_DIR", "profiles/roles"))


@dataclass(frozen=True, slots=True)
class RoleConfig:
    skills: List[str] = field(default_factory=list)
    job_site: str = ""
    job_site_description: str = ""
    job_tools: List[str] = field(default_factory=list)
    job_supplies: Any = field(default_factory=dict)
    job_prep_description: str = ""
    job_description: str = ""
    saving_memory: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoleConfig":
        known = {k: data[k] for k in cls.__dataclass_fields__ if k in data}
        return cls(**known)


def _load_all() -> Dict[str, RoleConfig]:
    global _ROLE_MAP
    if _ROLE_MAP is None:
        role_map: Dict[str, RoleConfig] = {}
        directory = roles_dir()
        for path in sorted(directory.glob("*.json")):
            try:
                role_map[path.stem] = RoleConfig.from_dict(
                    json.loads(path.read_text(encoding="utf-8"))
                )
            except (OSError, json.JSONDecodeError, TypeError) as exc:
                logger.warning("Skipping unreadable role file %s: %s", path, exc)
        if not directory.is_dir():
            logger.info("Roles directory %s not found; no roles available", directory)
        _ROLE_MAP = role_map
    return _ROLE_MAP


def get_role_config(role_name: str) -> Optional[RoleConfig]:
    """
    Return the configuration of ``role_name``, derived from
    ``<roles_dir>/<role_name>.json``, or ``None`` if no such role exists.

    Example:
        get_role_config("farmer").job_site
    """
    config = _load_all().get(role_name)
    if config is None:
        logger.info("Unable to get role config for %s, not found in full role config", role_name)
    return config


def compose_role_prompt(role_name: str, config: RoleConfig) -> str:
    """
    Job block prepended to the conversing prompt.  A malformed role yields
    an empty block rather than an error.
    """
    try:
        job_site_description = config.job_site_description.replace("$JOB_SITE", config.job_site)
        job_tools = ", ".join(config.job_tools)
        job_supplies = json.dumps(config.job_supplies, separators=(",", ":"))
        job_prep_description = (
            config.job_prep_description
            .replace("$JOB_TOOLS", job_tools)
            .replace("$JOB_SUPPLIES", job_supplies)
        )
    except (AttributeError, TypeError) as exc:
        logger.warning("Malformed role config for %s: %s", role_name, exc)
        return ""

    return (
        f"JOB NAME:\n{role_name}\n"
        f"JOB SITE DESCRIPTION:\n{job_site_description}\n"
        f"JOB PREP DESCRIPTION:\n{job_prep_description}\n"
        f"JOB DESCRIPTION:\n{config.job_description}\n"
    )


def role_memory_prompt(role_name: str, config: RoleConfig) -> Optional[str]:
    if not isinstance(config.saving_memory, str) or not config.saving_memory:
        return None
    return config.saving_memory.replace("$JOB_NAME", role_name)

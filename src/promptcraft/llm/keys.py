# src/promptcraft/llm/keys.py
from __future__ import annotations

import json, logging, os
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

# one-time env expansion
load_dotenv()

logger = logging.getLogger("promptcraft.llm.keys")

_KEYS_CACHE: Optional[Dict[str, str]] = None


def _keys_file() -> Path:
    return Path(os.getenv("PROMPTCRAFT_KEYS_FILE", "keys.json"))


def _load_keys_file() -> Dict[str, str]:
    global _KEYS_CACHE
    if _KEYS_CACHE is None:
        path = _keys_file()
        try:
            _KEYS_CACHE = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            _KEYS_CACHE = {}
        except json.JSONDecodeError as exc:
            logger.warning("Ignoring malformed keys file %s: %s", path, exc)
            _KEYS_CACHE = {}
    return _KEYS_CACHE


def get_key(name: str) -> Optional[str]:
    """Environment first, then keys.json."""
    return os.getenv(name) or _load_keys_file().get(name) or None


def has_key(name: str) -> bool:
    return get_key(name) is not None

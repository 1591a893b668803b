# src/promptcraft/llm/json_call.py
"""
Goal extraction – pull a ``{"name", "quantity"}`` object out of the first
fenced block of a model reply.  Never raises; a reply that does not yield a
complete goal yields ``None``.
"""

from __future__ import annotations
import json, logging, math, re
from dataclasses import dataclass
from typing import Any, Dict, Optional

import jsonschema

logger = logging.getLogger("promptcraft.llm.json_call")
if not logger.handlers:
    logger.addHandler(logging.StreamHandler())
logger.setLevel(logging.INFO)

GOAL_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["name", "quantity"],
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "quantity": {"type": ["integer", "number", "string"]},
    },
}

_FENCE = "```"
_LANG_TAG = re.compile(r"^\s*[A-Za-z][\w+-]*(?=\s|[{\[])")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass(frozen=True, slots=True)
class Goal:
    name: str
    quantity: int


# --------------------------------------------------------------------------- #
# helpers
# --------------------------------------------------------------------------- #
def _extract_fenced(text: str) -> str:
    """Content of the first ```fenced``` block with any language tag removed."""
    parts = text.split(_FENCE)
    if len(parts) < 3:
        raise ValueError("Could not locate fenced block")
    return _LANG_TAG.sub("", parts[1], count=1).strip()


def _coerce_quantity(value: Any) -> Optional[int]:
    """Leading-integer coercion: 5, 5.0, "5", "5 logs" → 5; "abc" → None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        m = _LEADING_INT.match(value)
        return int(m.group(1)) if m else None
    return None


def parse_goal(text: str) -> Optional[Goal]:
    try:
        obj = json.loads(_extract_fenced(text))
        jsonschema.validate(obj, GOAL_SCHEMA)
    except (ValueError, jsonschema.ValidationError) as exc:
        logger.info("Failed to parse goal: %r (%s)", text, exc)
        return None

    quantity = _coerce_quantity(obj["quantity"])
    if not obj["name"].strip() or quantity is None or quantity <= 0:
        logger.info("Failed to set goal: %r", text)
        return None
    return Goal(name=obj["name"], quantity=quantity)

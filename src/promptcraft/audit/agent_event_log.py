from __future__ import annotations

import json, os, time, uuid
from pathlib import Path
from threading import RLock
from typing import Dict, Any, Optional

from filelock import FileLock

from promptcraft.audit.llm_call_log import log_root

MAX_BYTES = int(os.getenv("PROMPTCRAFT_LOG_ROLL_MB", "50")) * 1024 * 1024


class AgentEventLogger:
    """
    Append-only JSON-Lines audit log of prompter activity.
    Each write = one *event* dict:
        {ts, event, agent, kind?, outcome?, detail?, profile_digest?}

    ``event`` is ``agent_init`` or ``prompt``; ``outcome`` is one of
    ``ok``, ``stale``, ``hallucination``, ``rejected``, ``no_goal``.
    """

    _instance: "AgentEventLogger|None" = None

    # ---------------- singleton boiler-plate -------------------------
    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._init()
        return cls._instance

    def _init(self):
        ts = time.strftime("%Y%m%d-%H%M%S")
        self._file = log_root() / f"events-{ts}.jsonl"
        self._lock = RLock()
        self._flock = FileLock(str(self._file) + ".lock")

    @property
    def path(self) -> Path:
        return self._file

    # ---------------- public helpers --------------------------------
    def register_agent(self, name: str, profile_digest: str | None = None) -> str:
        aid = f"{name}-{uuid.uuid4().hex[:8]}"
        self._write({
            "ts": time.time(),
            "event": "agent_init",
            "agent": aid,
            "profile_digest": profile_digest,
        })
        return aid

    def log_prompt(self, aid: str, kind: str, outcome: str,
                   detail: Optional[str] = None) -> None:
        self._write({
            "ts": time.time(),
            "event": "prompt",
            "agent": aid,
            "kind": kind,
            "outcome": outcome,
            "detail": detail,
        })

    # ---------------- internals -------------------------------------
    def _write(self, obj: Dict[str, Any]) -> None:
        line = json.dumps(obj, ensure_ascii=False) + "\n"
        with self._flock, self._lock:
            with self._file.open("a", encoding="utf-8") as fh:
                fh.write(line)

        # rotate if the file gets too big
        if self._file.stat().st_size > MAX_BYTES:
            ts = time.strftime("%Y%m%d-%H%M%S")
            self._file.rename(self._file.with_name(f"events-{ts}.jsonl"))

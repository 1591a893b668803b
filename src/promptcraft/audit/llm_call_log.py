from __future__ import annotations
import json, time, os
from pathlib import Path
from threading import RLock

from filelock import FileLock

_MAX = 50 * 1024 * 1024                   # 50 MB rotate


def log_root() -> Path:
    root = Path(os.getenv("PROMPTCRAFT_LOG_DIR", ".promptcraft_logs")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


class LLMCallLogger:
    """
    One JSON line per backend request:
        {ts, backend, api, model, latency_s, prompt_tokens,
         completion_tokens, turns, outcome, result_sha}
    """
    _inst: "LLMCallLogger|None" = None

    def __new__(cls):
        if cls._inst is None:
            cls._inst = super().__new__(cls)
            cls._inst._init()
        return cls._inst

    def _init(self):
        ts = time.strftime("%Y%m%d-%H%M%S")
        self._file = log_root() / f"llm-{ts}.jsonl"
        self._lock = RLock()
        self._flock = FileLock(str(self._file) + ".lock")

    @property
    def path(self) -> Path:
        return self._file

    # ------------------------------------------------------------------
    def log(self, rec: dict):
        line = json.dumps(rec, ensure_ascii=False) + "\n"
        with self._flock, self._lock:
            with self._file.open("a", encoding="utf-8") as fh:
                fh.write(line)
        if self._file.stat().st_size > _MAX:
            ts = time.strftime("%Y%m%d-%H%M%S")
            self._file.rename(self._file.with_name(f"llm-{ts}.jsonl"))

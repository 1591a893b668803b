# tests/conftest.py
"""
Shared fixtures.

Every test gets its own audit-log directory, an empty roles directory and
fresh process-wide singletons, so nothing leaks between tests and nothing
touches the network.
"""
from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Union

import pytest

# ------------------------------------------------------------------------- #
# ensure  src/  is importable from any working dir
# ------------------------------------------------------------------------- #
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if (PROJECT_ROOT / "src").exists():
    sys.path.insert(0, str(PROJECT_ROOT / "src"))

from promptcraft.agents import roles as _roles_mod
from promptcraft.agents.profile import AgentProfile
from promptcraft.audit.agent_event_log import AgentEventLogger
from promptcraft.audit.llm_call_log import LLMCallLogger
from promptcraft.context.provider import SnapshotAgentContext
from promptcraft.llm import keys as _keys_mod
from promptcraft.llm.base import Completion, ModelBackend


Reply = Union[str, Exception, Callable[[], Any]]


class ScriptedBackend(ModelBackend):
    """
    Stand-in for a real provider.

    • replies[i] answers the i-th call: a string, an exception to raise, or
      an async callable returning a string (to hold a call open).
    • calls records (turns, system_prompt, stop_seq, monotonic time).
    """

    api = "scripted"

    def __init__(self, replies: List[Reply] | None = None, default: str = "ok"):
        super().__init__("scripted-model")
        self._queue = list(replies or [])
        self.default = default
        self.calls: List[Dict[str, Any]] = []

    async def _complete(self, turns, system_prompt, stop_seq) -> Completion:
        self.calls.append({
            "turns": list(turns),
            "system_prompt": system_prompt,
            "stop_seq": stop_seq,
            "at": time.monotonic(),
        })
        reply = self._queue.pop(0) if self._queue else self.default
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = await reply()
        return Completion(text=reply, prompt_tokens=10, completion_tokens=2)


@pytest.fixture(autouse=True)
def _isolated_state(tmp_path, monkeypatch):
    monkeypatch.setenv("PROMPTCRAFT_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("PROMPTCRAFT_ROLES_DIR", str(tmp_path / "roles"))
    monkeypatch.setenv("PROMPTCRAFT_KEYS_FILE", str(tmp_path / "keys.json"))
    monkeypatch.setattr(LLMCallLogger, "_inst", None)
    monkeypatch.setattr(AgentEventLogger, "_instance", None)
    monkeypatch.setattr(_roles_mod, "_ROLE_MAP", None)
    monkeypatch.setattr(_keys_mod, "_KEYS_CACHE", None)
    yield


@pytest.fixture
def roles_dir(tmp_path) -> Path:
    path = tmp_path / "roles"
    path.mkdir(exist_ok=True)
    return path


@pytest.fixture
def scripted_backend():
    return ScriptedBackend


@pytest.fixture
def agent() -> SnapshotAgentContext:
    return SnapshotAgentContext(
        name="andy",
        stats="STATS\n- Health: 20 / 20\n- Biome: plains",
        command_docs="!stats: report stats\n!collectBlocks: collect blocks\n!attack: attack",
        skill_docs="skills.collectBlock(bot, type, num)",
        action_label="Collecting dirt",
        blocked=["!attack"],
        memory_text="Met greg at spawn.",
        goal_prompt=None,
        known_constructions={"house": {}, "tower": {}},
        role_commands={"!collectBlocks": "!collectBlocks"},
        history=[{"role": "user", "content": "greg: hi"}],
    )


@pytest.fixture
def profile_dict() -> Dict[str, Any]:
    return {
        "name": "andy",
        "model": "gpt-4o-mini",
        "cooldown": 0,
        "conversing": "You are $NAME.\n$STATS\n$COMMAND_DOCS",
        "coding": "Write code as $NAME.\n$CODE_DOCS",
        "saving_memory": "Old memory: $MEMORY\n$TO_SUMMARIZE",
        "bot_responder": "You are busy with '$ACTION'.\n$TO_SUMMARIZE\nrespond or ignore?",
        "goal_setting": "Pick a goal. Blueprints: $BLUEPRINTS",
    }


@pytest.fixture
def make_prompter(agent, profile_dict, tmp_path):
    from promptcraft.agents.prompter import Prompter

    def _make(backend: ModelBackend, **overrides) -> Prompter:
        data = {**profile_dict, **overrides}
        return Prompter(
            agent,
            AgentProfile.from_dict(data),
            chat_model=backend,
            embedding_model=None,
            bots_dir=tmp_path / "bots",
        )

    return _make

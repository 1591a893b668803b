# src/promptcraft/context/provider.py
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

IDLE_LABEL = "Idle"


class AgentContextProvider(ABC):
    """
    Live agent state as seen by the template resolver.

    World queries (stats, command docs, skill docs) are owned by the game
    layer; this is only the read side of that contract.
    """

    name: str

    @abstractmethod
    def get_stats(self) -> str: ...

    def get_inventory_string(self) -> str:
        return ""

    @abstractmethod
    def get_command_docs(self, blocked_actions: Iterable[str],
                         role_commands: Sequence[Any] = ()) -> str: ...

    @abstractmethod
    def get_skill_docs(self) -> str: ...

    def get_role_command(self, skill: str) -> Optional[Any]:
        return None

    @property
    def current_action_label(self) -> Optional[str]:
        return None

    @property
    def blocked_actions(self) -> List[str]:
        return []

    @property
    def memory(self) -> str:
        return ""

    @property
    def self_prompt(self) -> Optional[str]:
        """Current self-assigned goal, or ``None`` when self-prompting is off."""
        return None

    @property
    def constructions(self) -> Mapping[str, Any]:
        return {}

    @abstractmethod
    def get_history(self) -> List[Dict[str, str]]: ...


class ExampleSource(ABC):
    """Few-shot example selection. Ranking is the implementation's business."""

    @abstractmethod
    async def load(self, examples: Sequence[Any]) -> None: ...

    @abstractmethod
    async def create_example_message(self, turns: Sequence[Dict[str, str]]) -> str: ...


ExampleFactory = Callable[[Any], ExampleSource]


@dataclass
class SnapshotAgentContext(AgentContextProvider):
    """Plain-data agent state; handy for tooling, replays and tests."""
    name: str
    stats: str = ""
    command_docs: str = ""
    skill_docs: str = ""
    action_label: Optional[str] = None
    blocked: List[str] = field(default_factory=list)
    memory_text: str = ""
    goal_prompt: Optional[str] = None
    known_constructions: Dict[str, Any] = field(default_factory=dict)
    role_commands: Dict[str, Any] = field(default_factory=dict)
    history: List[Dict[str, str]] = field(default_factory=list)

    def get_stats(self) -> str:
        return self.stats

    def get_command_docs(self, blocked_actions, role_commands=()) -> str:
        docs = [
            line for line in self.command_docs.splitlines()
            if not any(b in line for b in blocked_actions)
        ]
        if role_commands:
            docs = [line for line in docs if any(c in line for c in role_commands)]
        return "\n".join(docs)

    def get_skill_docs(self) -> str:
        return self.skill_docs

    def get_role_command(self, skill: str) -> Optional[Any]:
        return self.role_commands.get(skill)

    @property
    def current_action_label(self) -> Optional[str]:
        return self.action_label

    @property
    def blocked_actions(self) -> List[str]:
        return list(self.blocked)

    @property
    def memory(self) -> str:
        return self.memory_text

    @property
    def self_prompt(self) -> Optional[str]:
        return self.goal_prompt

    @property
    def constructions(self) -> Mapping[str, Any]:
        return self.known_constructions

    def get_history(self) -> List[Dict[str, str]]:
        return [dict(t) for t in self.history]

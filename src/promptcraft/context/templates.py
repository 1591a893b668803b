# src/promptcraft/context/templates.py
"""
Prompt template expansion.

A template holds ``$UPPER_CASE`` directives.  ``TemplateResolver.resolve``
scans the template once, resolves each distinct directive it found, and
splices the values in.  Values are never rescanned, so agent memory or chat
text that happens to contain ``$NAME`` comes through verbatim.  Directives
that cannot be resolved stay in place and are reported in a single warning.
"""
from __future__ import annotations

import inspect
import logging
import re
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence, Union

from .provider import IDLE_LABEL, AgentContextProvider, ExampleSource
from .turns import stringify_turns

logger = logging.getLogger("promptcraft.context.templates")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s %(message)s"))
    logger.addHandler(h)
logger.setLevel(logging.INFO)

DIRECTIVE = re.compile(r"\$[A-Z_]+")

Turns = Optional[Sequence[Dict[str, str]]]
RoleCommandLookup = Callable[[], Awaitable[Sequence[Any]]]


class _Unresolved(Exception):
    """A directive whose inputs are missing; the token stays in the text."""


class TemplateResolver:
    def __init__(
        self,
        agent: AgentContextProvider,
        *,
        role_commands: Optional[RoleCommandLookup] = None,
    ):
        self.agent = agent
        self._role_commands = role_commands
        self._resolvers: Dict[str, Callable[..., Union[str, Awaitable[str]]]] = {
            "$NAME": self._name,
            "$STATS": self._stats,
            "$INVENTORY": self._inventory,
            "$ACTION": self._action,
            "$COMMAND_DOCS": self._command_docs,
            "$CODE_DOCS": self._code_docs,
            "$EXAMPLES": self._examples,
            "$MEMORY": self._memory,
            "$TO_SUMMARIZE": self._to_summarize,
            "$CONVO": self._convo,
            "$SELF_PROMPT": self._self_prompt,
            "$LAST_GOALS": self._last_goals,
            "$BLUEPRINTS": self._blueprints,
        }

    @property
    def directives(self) -> Sequence[str]:
        return tuple(self._resolvers)

    # ------------------------------------------------------------------ #
    async def resolve(
        self,
        template: str,
        turns: Turns = None,
        examples: Optional[ExampleSource] = None,
        to_summarize: Turns = None,
        last_goals: Optional[Mapping[str, bool]] = None,
    ) -> str:
        ctx = {
            "turns": list(turns or []),
            "examples": examples,
            "to_summarize": list(to_summarize or []),
            "last_goals": dict(last_goals or {}),
        }

        values: Dict[str, str] = {}
        # scan order keeps collaborator calls deterministic
        for token in dict.fromkeys(DIRECTIVE.findall(template)):
            resolver = self._resolvers.get(token)
            if resolver is None:
                continue
            try:
                value = resolver(**ctx)
                if inspect.isawaitable(value):
                    value = await value
            except _Unresolved:
                continue
            values[token] = "" if value is None else str(value)

        remaining = []

        def _splice(m: re.Match) -> str:
            token = m.group(0)
            if token in values:
                return values[token]
            remaining.append(token)
            return token

        prompt = DIRECTIVE.sub(_splice, template)
        if remaining:
            logger.warning("Unknown prompt placeholders: %s",
                           ", ".join(dict.fromkeys(remaining)))
        return prompt

    # ------------------------------------------------------------------ #
    # directive resolvers
    # ------------------------------------------------------------------ #
    def _name(self, **_ctx) -> str:
        return self.agent.name

    def _stats(self, **_ctx) -> str:
        return self.agent.get_stats()

    def _inventory(self, **_ctx) -> str:
        # folded into $STATS
        return ""

    def _action(self, **_ctx) -> str:
        return self.agent.current_action_label or IDLE_LABEL

    async def _command_docs(self, **_ctx) -> str:
        role_commands: Sequence[Any] = ()
        if self._role_commands is not None:
            role_commands = await self._role_commands()
        return self.agent.get_command_docs(self.agent.blocked_actions, role_commands)

    def _code_docs(self, **_ctx) -> str:
        return self.agent.get_skill_docs()

    async def _examples(self, *, examples, turns, **_ctx) -> str:
        if examples is None:
            raise _Unresolved
        return await examples.create_example_message(turns)

    def _memory(self, **_ctx) -> str:
        return self.agent.memory

    def _to_summarize(self, *, to_summarize, **_ctx) -> str:
        return stringify_turns(to_summarize)

    def _convo(self, *, turns, **_ctx) -> str:
        return "Recent conversation:\n" + stringify_turns(turns)

    def _self_prompt(self, **_ctx) -> str:
        goal = self.agent.self_prompt
        if goal is None:
            return ""
        return f"YOUR CURRENT ASSIGNED GOAL: \"{goal}\"\n"

    def _last_goals(self, *, last_goals, **_ctx) -> str:
        goal_text = ""
        for goal, succeeded in last_goals.items():
            if succeeded:
                goal_text += f"You recently successfully completed the goal {goal}.\n"
            else:
                goal_text += f"You recently failed to complete the goal {goal}.\n"
        return goal_text.strip()

    def _blueprints(self, **_ctx) -> str:
        return ", ".join(self.agent.constructions)

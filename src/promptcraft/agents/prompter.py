# src/promptcraft/agents/prompter.py
from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from promptcraft.audit.agent_event_log import AgentEventLogger
from promptcraft.context.prompts import GOAL_USER_TEMPLATE, NO_RESPONSE, OTHER_BOT_MARKER
from promptcraft.context.provider import AgentContextProvider, ExampleFactory, ExampleSource
from promptcraft.context.templates import TemplateResolver
from promptcraft.llm.base import ModelBackend
from promptcraft.llm.json_call import Goal, parse_goal
from promptcraft.llm.registry import (
    create_backend,
    create_embedding_backend,
    create_summary_backend,
)
from .concurrency import RequestGate
from .profile import AgentProfile, load_profile, save_profile_copy
from .roles import compose_role_prompt, get_role_config, role_memory_prompt

logger = logging.getLogger("promptcraft.agents.prompter")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s %(message)s"))
    logger.addHandler(h)
logger.setLevel(logging.INFO)

MAX_CONVO_ATTEMPTS = 3

_FROM_PROFILE: Any = object()


class Prompter:
    """
    Builds prompts for one agent and sends them to its backends.

    Five request kinds share a single cooldown: conversation, coding,
    memory summary, bot-responder decision and goal setting.  Coding is
    single-flight; conversation discards replies that a newer message has
    superseded.

    Backends default to whatever the profile names; pass them explicitly to
    override (tests, replays, shared clients).
    """

    def __init__(
        self,
        agent: AgentContextProvider,
        profile: AgentProfile,
        *,
        chat_model: Optional[ModelBackend] = None,
        summary_model: Optional[ModelBackend] = None,
        embedding_model: Optional[ModelBackend] = _FROM_PROFILE,
        bots_dir: Union[str, Path] = "bots",
    ):
        self.agent = agent
        self.profile = profile
        self.gate = RequestGate(profile.cooldown_seconds)

        self.convo_examples: Optional[ExampleSource] = None
        self.coding_examples: Optional[ExampleSource] = None

        logger.info("Using chat settings: %s", profile.model.as_dict())
        self.chat_model = chat_model or create_backend(profile.model, profile.max_tokens)
        self.summary_model = summary_model or create_summary_backend(
            profile.summary_model, self.chat_model
        )
        if embedding_model is _FROM_PROFILE:
            embedding_model = create_embedding_backend(profile.embedding, profile.model)
        self.embedding_model = embedding_model

        role_commands = self._role_commands if profile.roles else None
        self.resolver = TemplateResolver(agent, role_commands=role_commands)

        save_profile_copy(profile, bots_dir)

        _alog = AgentEventLogger()
        digest = hashlib.sha1(
            json.dumps(profile.raw, sort_keys=True, default=str).encode()
        ).hexdigest()
        self._agent_id = _alog.register_agent(profile.name, profile_digest=digest)
        self._alog = _alog

    @classmethod
    def from_file(
        cls,
        agent: AgentContextProvider,
        profile_path: Union[str, Path],
        *,
        default_path: Union[str, Path, None] = None,
        **kwargs,
    ) -> "Prompter":
        return cls(agent, load_profile(profile_path, default_path), **kwargs)

    # --------------------------------------------------------------------- #
    # Accessors
    # --------------------------------------------------------------------- #
    def get_name(self) -> str:
        return self.profile.name

    def get_init_modes(self) -> Dict[str, Any]:
        return self.profile.modes

    async def init_examples(self, factory: ExampleFactory) -> None:
        """Build and load the conversation and coding example sources."""
        try:
            self.convo_examples = factory(self.embedding_model)
            self.coding_examples = factory(self.embedding_model)
            await asyncio.gather(
                self.convo_examples.load(self.profile.conversation_examples),
                self.coding_examples.load(self.profile.coding_examples),
            )
        except Exception:
            logger.exception("Failed to initialize examples")
            raise
        logger.info("Examples initialized.")

    # --------------------------------------------------------------------- #
    # Template helpers
    # --------------------------------------------------------------------- #
    async def replace_strings(
        self,
        prompt: str,
        turns: Optional[Sequence[Dict[str, str]]] = None,
        examples: Optional[ExampleSource] = None,
        to_summarize: Optional[Sequence[Dict[str, str]]] = None,
        last_goals: Optional[Mapping[str, bool]] = None,
    ) -> str:
        return await self.resolver.resolve(prompt, turns, examples, to_summarize, last_goals)

    async def get_command_list_for_roles(self, roles: Sequence[str] = ()) -> List[Any]:
        if not roles:
            return []
        config = get_role_config(roles[0])
        if config is None:
            return []
        result = []
        for skill in config.skills:
            command = self.agent.get_role_command(skill)
            if command:
                result.append(command)
        return result

    async def _role_commands(self) -> List[Any]:
        return await self.get_command_list_for_roles(self.profile.roles)

    def _role_prefix(self) -> str:
        role = self.profile.first_role
        if role is None:
            return ""
        config = get_role_config(role)
        if config is None:
            return ""
        return compose_role_prompt(role, config)

    def _log(self, kind: str, outcome: str, detail: Optional[str] = None) -> None:
        self._alog.log_prompt(self._agent_id, kind, outcome, detail)

    # --------------------------------------------------------------------- #
    # Prompt operations
    # --------------------------------------------------------------------- #
    async def prompt_convo(self, turns: Sequence[Dict[str, str]]) -> str:
        token = self.gate.new_message_token()
        for attempt in range(1, MAX_CONVO_ATTEMPTS + 1):
            await self.gate.check_cooldown()
            if not self.gate.is_current(token):
                self._log("conversation", "stale", "superseded before sending")
                return ""

            prompt = await self.replace_strings(self.profile.conversing, turns, self.convo_examples)
            prompt = self._role_prefix() + prompt
            if not self.gate.is_current(token):
                self._log("conversation", "stale", "superseded while building prompt")
                return ""

            generation = await self.chat_model.send_request(turns, prompt)
            # in conversations with >2 players models tend to role-play as other bots
            if OTHER_BOT_MARKER in generation:
                logger.warning("LLM hallucinated message as another bot (attempt %d/%d). Trying again...",
                               attempt, MAX_CONVO_ATTEMPTS)
                self._log("conversation", "hallucination", f"attempt {attempt}")
                continue
            if not self.gate.is_current(token):
                logger.warning("%s received new message while generating, discarding old response.",
                               self.agent.name)
                self._log("conversation", "stale", "superseded while generating")
                return ""
            self._log("conversation", "ok")
            return generation
        return ""

    async def prompt_coding(self, turns: Sequence[Dict[str, str]]) -> str:
        async with self.gate.coding_slot() as slot:
            if not slot.acquired:
                logger.warning("Already awaiting coding response, returning no response.")
                self._log("coding", "rejected")
                return NO_RESPONSE
            await self.gate.check_cooldown()
            prompt = await self.replace_strings(self.profile.coding, turns, self.coding_examples)
            resp = await self.chat_model.send_request(turns, prompt)
            self._log("coding", "ok")
            return resp

    async def prompt_mem_saving(self, to_summarize: Sequence[Dict[str, str]]) -> str:
        await self.gate.check_cooldown()
        prompt = self.profile.saving_memory
        role = self.profile.first_role
        if role is not None:
            config = get_role_config(role)
            role_prompt = role_memory_prompt(role, config) if config else None
            if role_prompt is None:
                logger.info("Role %s has no saving_memory prompt; using the profile's", role)
            else:
                prompt = role_prompt
        prompt = await self.replace_strings(prompt, None, None, to_summarize)
        resp = await self.summary_model.send_request([], prompt)
        self._log("memory", "ok")
        return resp

    async def prompt_should_respond_to_bot(self, new_message: str) -> bool:
        await self.gate.check_cooldown()
        messages = list(self.agent.get_history())
        messages.append({"role": "user", "content": new_message})
        prompt = await self.replace_strings(self.profile.bot_responder, None, None, messages)
        res = await self.chat_model.send_request([], prompt)
        decision = res.strip().lower() == "respond"
        self._log("bot_responder", "ok", "respond" if decision else "ignore")
        return decision

    async def prompt_goal_setting(
        self,
        turns: Sequence[Dict[str, str]],
        last_goals: Optional[Mapping[str, bool]] = None,
    ) -> Optional[Goal]:
        await self.gate.check_cooldown()
        system_message = await self.replace_strings(self.profile.goal_setting, turns)
        user_message = await self.replace_strings(GOAL_USER_TEMPLATE, turns, None, None, last_goals)

        res = await self.chat_model.send_request(
            [{"role": "user", "content": user_message}], system_message
        )
        goal = parse_goal(res)
        self._log("goal_setting", "ok" if goal else "no_goal", res if goal is None else goal.name)
        return goal

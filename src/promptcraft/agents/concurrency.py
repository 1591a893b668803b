# src/promptcraft/agents/concurrency.py
from __future__ import annotations

import asyncio
import logging
import time

logger = logging.getLogger("promptcraft.agents.concurrency")


class CodingSlot:
    """
    Async context manager for single-flight coding requests.

    Entering never waits: if another coding request holds the slot,
    ``acquired`` is False and the caller is expected to back off.

    Attributes:
        acquired (bool): True if this context holds the slot, else False.

    Example:
        >>> async with gate.coding_slot() as slot:
        ...     if slot.acquired:
        ...         # critical section
        ...         pass

    Notes:
        - Rejection, not queueing: concurrent callers are turned away.
        - The slot is released on exit, including when the body raises.
    """
    def __init__(self, gate: "RequestGate"):
        self._gate = gate
        self.acquired = False

    async def __aenter__(self):
        if self._gate._awaiting_coding:
            self.acquired = False
        else:
            self._gate._awaiting_coding = True
            self.acquired = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.acquired:
            self._gate._awaiting_coding = False
        self.acquired = False


class RequestGate:
    """
    Per-agent request discipline.

    * cooldown   – every request kind waits until ``cooldown`` seconds have
                   passed since the previous one was issued;
    * coding     – single-flight via ``coding_slot()``;
    * staleness  – ``new_message_token()`` supersedes all earlier tokens;
                   ``is_current(token)`` tells a conversation whether its
                   reply still matters.

    Only valid inside one event loop: every check-and-set below runs
    without an ``await`` in between.
    """

    def __init__(self, cooldown: float = 0.0):
        self.cooldown = max(float(cooldown), 0.0)
        self._last_prompt_time = float("-inf")
        self._awaiting_coding = False
        self._most_recent_token = 0

    # ------------------------------------------------------------------ #
    async def check_cooldown(self) -> None:
        now = time.monotonic()
        wait = 0.0
        if self.cooldown > 0:
            wait = max(self._last_prompt_time + self.cooldown - now, 0.0)
        # claim the slot before sleeping so concurrent waiters queue up behind it
        target = self._last_prompt_time = now + wait
        # the event loop may wake a timer up to one clock tick early
        while time.monotonic() < target:
            await asyncio.sleep(target - time.monotonic())

    def coding_slot(self) -> CodingSlot:
        return CodingSlot(self)

    @property
    def awaiting_coding(self) -> bool:
        return self._awaiting_coding

    # ------------------------------------------------------------------ #
    def new_message_token(self) -> int:
        # strictly increasing even if the clock does not advance
        self._most_recent_token = max(time.monotonic_ns(), self._most_recent_token + 1)
        return self._most_recent_token

    def is_current(self, token: int) -> bool:
        return token == self._most_recent_token

# src/promptcraft/context/turns.py
from __future__ import annotations

from typing import Dict, List, Literal, Optional, Sequence, TypedDict


class Turn(TypedDict):
    role: Literal["user", "assistant", "system"]
    content: str


def stringify_turns(turns: Optional[Sequence[Dict[str, str]]]) -> str:
    """Render a conversation as plain text for templates that embed history."""
    res = ""
    for turn in turns or []:
        if turn["role"] == "assistant":
            res += f"\nYour output:\n{turn['content']}"
        elif turn["role"] == "system":
            res += f"\nSystem output: {turn['content']}"
        else:
            res += f"\nUser input: {turn['content']}"
    return res.strip()


def strict_format(turns: Sequence[Dict[str, str]]) -> List[Dict[str, str]]:
    """
    Normalise turns for providers that demand strictly alternating
    user/assistant messages starting with a user message.

    System turns become user turns prefixed ``SYSTEM:``; consecutive user
    turns are merged; consecutive assistant turns get a filler user turn.
    The input is never mutated.
    """
    filler = {"role": "user", "content": "_"}
    messages: List[Dict[str, str]] = []
    prev_role = None
    for turn in turns:
        role = turn["role"]
        content = turn["content"].strip()
        if role == "system":
            role = "user"
            content = "SYSTEM: " + content
        if role == prev_role and role == "assistant":
            messages.append(dict(filler))
            messages.append({"role": role, "content": content})
        elif role == prev_role:
            messages[-1]["content"] += "\n" + content
        else:
            messages.append({"role": role, "content": content})
        prev_role = role

    if messages and messages[0]["role"] != "user":
        messages.insert(0, dict(filler))
    if not messages:
        messages.append(dict(filler))
    return messages


def to_single_prompt(
    turns: Sequence[Dict[str, str]],
    system: Optional[str] = None,
    stop_seq: str = "***",
    model_nickname: str = "assistant",
) -> str:
    """Flatten a chat into one completion prompt, ending with the model's cue."""
    prompt = f"{system}{stop_seq}" if system else ""
    role = ""
    for turn in turns:
        role = turn["role"]
        if role == "assistant":
            role = model_nickname
        prompt += f"{role}: {turn['content']}{stop_seq}"
    # extend the model's own message if it spoke last
    if role != model_nickname:
        prompt += model_nickname + ": "
    return prompt

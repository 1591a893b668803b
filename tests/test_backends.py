"""
tests/test_backends.py
======================

The shared recovery policy of ModelBackend (context halving, placeholder on
failure, diagnostics) and the marshaling of the concrete providers.  The SDK
clients are swapped for SimpleNamespace doubles; no network traffic.
"""
from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest

from promptcraft.audit.llm_call_log import LLMCallLogger
from promptcraft.context.turns import strict_format, stringify_turns, to_single_prompt
from promptcraft.llm import base as base_mod
from promptcraft.llm.anthropic_backend import ClaudeBackend
from promptcraft.llm.base import (
    PLACEHOLDER_RESPONSE,
    Completion,
    ContextLengthExceeded,
    ModelBackend,
)
from promptcraft.llm.ollama_backend import LocalBackend
from promptcraft.llm.openai_compat import GPTBackend
from promptcraft.llm.replicate_backend import ReplicateBackend

TURNS = [
    {"role": "user", "content": "one"},
    {"role": "assistant", "content": "two"},
    {"role": "user", "content": "three"},
    {"role": "assistant", "content": "four"},
]


# ------------------------------------------------------------------------- #
# recovery policy
# ------------------------------------------------------------------------- #
def test_context_overflow_drops_oldest_turn_until_it_fits(scripted_backend):
    overflow = ContextLengthExceeded("too long")
    backend = scripted_backend([overflow, overflow, "fits now"])

    out = asyncio.run(backend.send_request(TURNS, "sys"))

    assert out == "fits now"
    assert [len(c["turns"]) for c in backend.calls] == [4, 3, 2]
    assert backend.calls[-1]["turns"] == TURNS[2:]


def test_context_overflow_with_one_turn_left_gives_placeholder(scripted_backend):
    overflow = ContextLengthExceeded("too long")
    backend = scripted_backend([overflow] * 5)

    out = asyncio.run(backend.send_request(TURNS[:3], "sys"))

    assert out == PLACEHOLDER_RESPONSE
    assert [len(c["turns"]) for c in backend.calls] == [3, 2, 1]


def test_other_failures_give_placeholder_without_retry(scripted_backend):
    backend = scripted_backend([ConnectionError("unreachable"), "never used"])

    out = asyncio.run(backend.send_request(TURNS, "sys"))

    assert out == PLACEHOLDER_RESPONSE
    assert len(backend.calls) == 1


def test_caller_turns_are_not_mutated(scripted_backend):
    backend = scripted_backend([ContextLengthExceeded("x"), "ok"])
    turns = [dict(t) for t in TURNS]
    asyncio.run(backend.send_request(turns, "sys"))
    assert turns == TURNS


def test_stats_and_audit_log(scripted_backend):
    backend = scripted_backend(["a", ConnectionError("down")])
    asyncio.run(backend.send_request(TURNS, "sys"))
    asyncio.run(backend.send_request(TURNS, "sys"))

    assert len(backend.stats.response_times) == 1
    assert backend.stats.top_context_length == 12

    lines = LLMCallLogger().path.read_text().splitlines()
    records = [json.loads(l) for l in lines]
    assert [r["outcome"] for r in records] == ["ok", "error"]
    assert records[0]["prompt_tokens"] == 10


class _NoUsageBackend(ModelBackend):
    api = "no-usage"

    async def _complete(self, turns, system_prompt, stop_seq) -> Completion:
        return Completion(text="hello")


class _StrictEncoding:
    """Mimics tiktoken: special tokens in plain text raise unless allowed."""

    def encode(self, text, disallowed_special="all"):
        if disallowed_special and "<|endoftext|>" in text:
            raise ValueError("special token in text")
        return text.split()


SPECIAL_TURNS = [{"role": "user", "content": "greg: type <|endoftext|> lol"}]


def test_special_tokens_in_chat_are_counted_as_text(monkeypatch):
    monkeypatch.setattr(base_mod.tiktoken, "get_encoding", lambda name: _StrictEncoding())
    backend = _NoUsageBackend("m")

    assert asyncio.run(backend.send_request(SPECIAL_TURNS, "sys")) == "hello"
    record = json.loads(LLMCallLogger().path.read_text().splitlines()[-1])
    assert record["prompt_tokens"] == 7
    assert record["outcome"] == "ok"


def test_missing_token_encoding_leaves_count_empty(monkeypatch):
    def offline(name):
        raise ConnectionError("cannot fetch o200k_base")

    monkeypatch.setattr(base_mod.tiktoken, "get_encoding", offline)
    backend = _NoUsageBackend("m")

    assert asyncio.run(backend.send_request(SPECIAL_TURNS, "sys")) == "hello"
    record = json.loads(LLMCallLogger().path.read_text().splitlines()[-1])
    assert record["prompt_tokens"] is None
    assert backend.stats.response_times


def test_audit_log_failure_never_reaches_caller(monkeypatch, scripted_backend):
    def broken(self, rec):
        raise NotADirectoryError("log dir is a file")

    monkeypatch.setattr(LLMCallLogger, "log", broken)
    backend = scripted_backend(["fine", ConnectionError("down"), ContextLengthExceeded("x")])

    assert asyncio.run(backend.send_request(TURNS, "sys")) == "fine"
    assert asyncio.run(backend.send_request(TURNS, "sys")) == PLACEHOLDER_RESPONSE
    assert asyncio.run(backend.send_request(TURNS[:1], "sys")) == PLACEHOLDER_RESPONSE


def test_embed_unsupported(scripted_backend):
    with pytest.raises(NotImplementedError):
        asyncio.run(scripted_backend().embed("hello"))


# ------------------------------------------------------------------------- #
# OpenAI-compatible marshaling
# ------------------------------------------------------------------------- #
def _openai_double(responses: List[Any], seen: List[Dict[str, Any]]):
    async def create(**pack):
        seen.append(pack)
        return responses.pop(0)

    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


def _completion(content: str, finish_reason: str = "stop"):
    return SimpleNamespace(
        choices=[SimpleNamespace(finish_reason=finish_reason,
                                 message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=20, completion_tokens=5),
    )


def test_gpt_backend_prepends_system_prompt(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "dummy")
    seen: List[Dict[str, Any]] = []
    backend = GPTBackend("gpt-4o-mini")
    backend._client = _openai_double([_completion("hello")], seen)

    out = asyncio.run(backend.send_request(TURNS[:1], "be brief", "***"))

    assert out == "hello"
    assert seen[0]["model"] == "gpt-4o-mini"
    assert seen[0]["messages"][0] == {"role": "system", "content": "be brief"}
    assert seen[0]["messages"][1:] == TURNS[:1]
    assert seen[0]["stop"] == "***"


def test_gpt_backend_treats_length_finish_as_overflow(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "dummy")
    seen: List[Dict[str, Any]] = []
    backend = GPTBackend("gpt-4o-mini")
    backend._client = _openai_double(
        [_completion("", "length"), _completion("short enough")], seen
    )

    out = asyncio.run(backend.send_request(TURNS, "sys"))

    assert out == "short enough"
    assert len(seen[1]["messages"]) == len(seen[0]["messages"]) - 1


def test_o1_models_get_no_system_role_or_stop(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "dummy")
    seen: List[Dict[str, Any]] = []
    backend = GPTBackend("o1-mini")
    backend._client = _openai_double([_completion("done")], seen)

    asyncio.run(backend.send_request(TURNS[:1], "sys"))

    assert "stop" not in seen[0]
    assert all(m["role"] != "system" for m in seen[0]["messages"])


# ------------------------------------------------------------------------- #
# Anthropic marshaling
# ------------------------------------------------------------------------- #
def test_claude_backend_uses_native_system_field(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "dummy")
    seen: List[Dict[str, Any]] = []

    async def create(**pack):
        seen.append(pack)
        return SimpleNamespace(
            content=[SimpleNamespace(type="text", text="aye")],
            usage=SimpleNamespace(input_tokens=7, output_tokens=1),
        )

    backend = ClaudeBackend("claude-3-haiku")
    backend._client = SimpleNamespace(messages=SimpleNamespace(create=create))

    turns = [
        {"role": "assistant", "content": "hi"},
        {"role": "system", "content": "Code output: done"},
        {"role": "user", "content": "and now?"},
    ]
    out = asyncio.run(backend.send_request(turns, "you are andy"))

    assert out == "aye"
    assert seen[0]["system"] == "you are andy"
    assert seen[0]["messages"][0]["role"] == "user"
    roles = [m["role"] for m in seen[0]["messages"]]
    assert all(a != b for a, b in zip(roles, roles[1:]))
    assert seen[0]["stop_sequences"] == ["***"]


# ------------------------------------------------------------------------- #
# turn helpers
# ------------------------------------------------------------------------- #
def test_strict_format():
    turns = [
        {"role": "assistant", "content": " a1 "},
        {"role": "assistant", "content": "a2"},
        {"role": "system", "content": "s1"},
        {"role": "user", "content": "u1"},
    ]
    assert strict_format(turns) == [
        {"role": "user", "content": "_"},
        {"role": "assistant", "content": "a1"},
        {"role": "user", "content": "_"},
        {"role": "assistant", "content": "a2"},
        {"role": "user", "content": "SYSTEM: s1\nu1"},
    ]
    assert turns[0]["content"] == " a1 "
    assert strict_format([]) == [{"role": "user", "content": "_"}]


def test_to_single_prompt():
    prompt = to_single_prompt(TURNS[:1], "sys", "***")
    assert prompt == "sys***user: one***assistant: "

    # the model spoke last: keep extending its message
    assert to_single_prompt(TURNS[:2]).endswith("assistant: two***")


def test_stringify_turns():
    text = stringify_turns([
        {"role": "user", "content": "greg: hi"},
        {"role": "assistant", "content": "hello"},
        {"role": "system", "content": "done"},
    ])
    assert text == "User input: greg: hi\nYour output:\nhello\nSystem output: done"


# ------------------------------------------------------------------------- #
# client lifecycle and defaults
# ------------------------------------------------------------------------- #
def test_replicate_backend_closes_its_http_client(monkeypatch):
    monkeypatch.setenv("REPLICATE_API_KEY", "dummy")
    backend = ReplicateBackend("replicate/meta/meta-llama-3-8b-instruct")
    assert backend.model == "meta/meta-llama-3-8b-instruct"

    asyncio.run(backend.aclose())
    assert backend._client.is_closed


def test_ollama_embedding_model_defaults():
    assert LocalBackend().embedding_model == "nomic-embed-text"
    assert LocalBackend().model == "llama3"
    assert LocalBackend("mxbai-embed-large").embedding_model == "mxbai-embed-large"


def test_base_aclose_is_a_no_op(scripted_backend):
    asyncio.run(scripted_backend().aclose())

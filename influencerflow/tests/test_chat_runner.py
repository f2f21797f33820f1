import json
import uuid

import pytest

from influencerflow.src.engine.llm import LLMResult
from influencerflow.src.engine.prompts import SUMMARY_SYSTEM_PROMPT
from influencerflow.src.engine.schemas import ToolMessage, UserMessage
from influencerflow.src.services import chat_runner as runner_mod
from influencerflow.src.services.chat_runner import ChatRunner, classify_llm_failure, summary_window
from influencerflow.src.services.discovery import DiscoveryClient


class _NoEmail:
    async def send(self, **kwargs):
        raise AssertionError("no email expected")


def _ok(content=None, tool_calls=None):
    return LLMResult(ok=True, model="m", call_id=uuid.uuid4(), content=content, tool_calls=tool_calls or [])


def _fail(status_code=None, timed_out=False):
    return LLMResult(
        ok=False, model="m", call_id=uuid.uuid4(), status_code=status_code, timed_out=timed_out, error_text="nope"
    )


def _call(call_id, name, arguments):
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": arguments}}


class _FakeModel:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    async def __call__(self, model, messages, **kwargs):
        self.calls.append({"model": model, "messages": messages, **kwargs})
        return self.results.pop(0)


def _runner(store):
    return ChatRunner(store, discovery=DiscoveryClient(mocked=True), email_sender=_NoEmail())  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_discovery_turn_runs_tool_and_summarizes(store, monkeypatch):
    fake = _FakeModel(
        _ok(tool_calls=[_call("call_1", "discover_creators", {"country": "IN", "tier": ["nano"], "category": ["Fashion"], "limit": 10})]),
        _ok(content="I found 5 nano fashion creators in India."),
    )
    monkeypatch.setattr(runner_mod, "chat_completion", fake)

    response = await _runner(store).handle_message("owner-a", "Find fashion nano influencers in India")

    assert response.is_error is False
    assert response.message == "I found 5 nano fashion creators in India."
    assert len(response.tool_calls) == 1
    call = response.tool_calls[0]
    assert call.tool_call_id == "call_1"
    assert call.function_name == "discover_creators"
    assert call.result.success is True
    assert call.result.data["total"] > 0
    assert call.result.data["searchParams"]["connector"] == "instagram"

    messages = store.get_messages(response.conversation_id)
    assert [m.role for m in messages] == ["system", "user", "assistant", "tool", "assistant"]
    assert messages[2].tool_calls[0].id == "call_1"
    assert messages[3].tool_call_id == "call_1"

    first, second = fake.calls
    assert first["tools"] and first["tool_choice"] == "auto"
    assert "tools" not in second
    assert second["messages"][0] == {"role": "system", "content": SUMMARY_SYSTEM_PROMPT}
    assert any(m["role"] == "tool" for m in second["messages"])


@pytest.mark.asyncio
async def test_plain_reply_without_tools(store, monkeypatch):
    fake = _FakeModel(_ok(content="Hi! How can I help with your campaigns?"))
    monkeypatch.setattr(runner_mod, "chat_completion", fake)

    response = await _runner(store).handle_message("owner-a", "hello")

    assert response.message == "Hi! How can I help with your campaigns?"
    assert response.tool_calls == []
    assert len(fake.calls) == 1
    assert [m.role for m in store.get_messages(response.conversation_id)] == ["system", "user", "assistant"]


@pytest.mark.asyncio
async def test_rate_limited_first_pass_is_retryable(store, monkeypatch):
    monkeypatch.setattr(runner_mod, "chat_completion", _FakeModel(_fail(429)))

    response = await _runner(store).handle_message("owner-a", "hello")

    assert response.is_error is True
    assert response.retryable is True
    assert response.error_type == "rate_limited"
    assert response.tool_calls == []
    assert [m.role for m in store.get_messages(response.conversation_id)] == ["system", "user"]


@pytest.mark.asyncio
async def test_malformed_arguments_do_not_block_sibling_calls(store, monkeypatch):
    fake = _FakeModel(
        _ok(
            tool_calls=[
                _call("call_good", "discover_creators", {"country": "US"}),
                _call("call_bad", "discover_creators", "{country: US"),
            ]
        ),
        _ok(content="Here is what I found."),
    )
    monkeypatch.setattr(runner_mod, "chat_completion", fake)

    response = await _runner(store).handle_message("owner-a", "find creators")

    by_id = {c.tool_call_id: c for c in response.tool_calls}
    assert [c.tool_call_id for c in response.tool_calls] == ["call_good", "call_bad"]
    assert by_id["call_good"].result.success is True
    assert by_id["call_bad"].result.success is False
    assert "Invalid arguments" in by_id["call_bad"].result.error

    tool_messages = [m for m in store.get_messages(response.conversation_id) if isinstance(m, ToolMessage)]
    assert {m.tool_call_id for m in tool_messages} == {"call_good", "call_bad"}
    assert response.message == "Here is what I found."


@pytest.mark.asyncio
async def test_summary_failure_still_returns_tool_results(store, monkeypatch):
    fake = _FakeModel(
        _ok(tool_calls=[_call("call_1", "discover_creators", {})]),
        _fail(timed_out=True),
    )
    monkeypatch.setattr(runner_mod, "chat_completion", fake)

    response = await _runner(store).handle_message("owner-a", "find creators")

    assert response.is_error is True
    assert response.retryable is False
    assert response.error_type == "timeout"
    assert len(response.tool_calls) == 1
    last = store.get_messages(response.conversation_id)[-1]
    assert last.role == "assistant"
    assert last.content == response.message


@pytest.mark.asyncio
async def test_unexpected_error_becomes_internal_error(store, monkeypatch):
    async def _explode(*args, **kwargs):
        raise RuntimeError("kaboom")

    monkeypatch.setattr(runner_mod, "chat_completion", _explode)

    response = await _runner(store).handle_message("owner-a", "hello", "chat_given")

    assert response.is_error is True
    assert response.retryable is True
    assert response.error_type == "internal_error"
    assert response.conversation_id == "chat_given"


@pytest.mark.asyncio
async def test_conversation_resolution(store, monkeypatch):
    monkeypatch.setattr(runner_mod, "chat_completion", _FakeModel(*[_ok(content="ok") for _ in range(4)]))
    runner = _runner(store)

    # A fresh client-supplied id is adopted.
    r1 = await runner.handle_message("owner-a", "one", "chat_client_1")
    assert r1.conversation_id == "chat_client_1"

    # Without an id the owner's live conversation continues.
    r2 = await runner.handle_message("owner-a", "two")
    assert r2.conversation_id == "chat_client_1"
    users = [m.content for m in store.get_messages("chat_client_1") if isinstance(m, UserMessage)]
    assert users == ["one", "two"]

    # Someone else's conversation id is never reused.
    r3 = await runner.handle_message("owner-b", "three", "chat_client_1")
    assert r3.conversation_id != "chat_client_1"
    assert store.get_conversation(r3.conversation_id).owner_id == "owner-b"
    assert len(store.get_messages("chat_client_1")) == 5


def test_classify_llm_failure():
    assert classify_llm_failure(_fail(429)).kind == "rate_limited"
    unauthorized = classify_llm_failure(_fail(401))
    assert unauthorized.kind == "unauthorized"
    assert unauthorized.retryable is False
    assert classify_llm_failure(_fail(400)).kind == "bad_request"
    assert classify_llm_failure(_fail(None, timed_out=True)).kind == "timeout"
    assert classify_llm_failure(_fail(503)).kind == "upstream_error"


def test_summary_window_keeps_tool_call_pairs(store):
    store.create_conversation("c1", "owner-a", "sys")
    store.add_message("c1", "user", "go")
    store.add_message(
        "c1",
        "assistant",
        "",
        tool_calls=[_call("t1", "list_campaigns", {}), _call("t2", "smart_campaign_status", {}), _call("t3", "list_campaigns", {})],
    )
    for call_id in ("t1", "t2", "t3"):
        store.add_message("c1", "tool", "{}", tool_call_id=call_id)
    history = store.get_messages("c1")[1:]

    window = summary_window(history, 2)

    assert window[0].role == "assistant"
    assert [m.role for m in window] == ["assistant", "tool", "tool", "tool"]

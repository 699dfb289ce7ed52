"""Tests for the agent loop: event sequence, tool dispatch, limits and failure handling."""

import asyncio

import pytest

from app.services.agent import (
    ITERATION_LIMIT_MESSAGE,
    MISSING_API_KEY_MESSAGE,
    Agent,
    AgentEventType,
)
from app.services.llm.base import (
    ChatMessage,
    LLMProviderError,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from app.services.llm.events import (
    InputJsonDelta,
    MessageDelta,
    StopReason,
    TextBlockStart,
    TextDelta,
    ToolUseBlockStart,
)
from app.services.rate_limiter import RateLimiter
from app.services.tools.registry import ToolRegistry
from fakes import RecordingTool, ScriptedProvider, text_turn, tool_turn


def _registry(*tools):
    registry = ToolRegistry()
    for tool in tools:
        registry.register(tool)
    return registry


def _agent(provider, registry=None, **kwargs):
    kwargs.setdefault("api_key", "test-key")
    return Agent(registry=registry or ToolRegistry(), provider=provider, **kwargs)


async def _collect(agent, text):
    return [event async for event in agent.send_message(text)]


@pytest.mark.asyncio
async def test_missing_api_key_emits_single_error():
    provider = ScriptedProvider(text_turn("hi"))
    agent = _agent(provider, api_key="")

    events = await _collect(agent, "hello")

    assert [e.type for e in events] == [AgentEventType.ERROR]
    assert events[0].error == MISSING_API_KEY_MESSAGE
    assert agent.history == []
    assert provider.requests == []


@pytest.mark.asyncio
async def test_rate_limited_user_gets_error_without_history():
    limiter = RateLimiter(requests_per_minute=1, requests_per_day=10)
    agent = _agent(ScriptedProvider(text_turn("hi")), rate_limiter=limiter)
    agent.set_user_id("u1")

    await _collect(agent, "first")
    events = await _collect(agent, "second")

    assert [e.type for e in events] == [AgentEventType.ERROR]
    assert "per minute" in events[0].error
    assert len(agent.history) == 2  # only the first exchange


@pytest.mark.asyncio
async def test_text_reply_streams_then_completes():
    provider = ScriptedProvider(text_turn("Hello", " there"))
    agent = _agent(provider)

    events = await _collect(agent, "hi")

    assert [(e.type, e.text) for e in events] == [
        (AgentEventType.TEXT, "Hello"),
        (AgentEventType.TEXT, " there"),
        (AgentEventType.COMPLETE, None),
    ]
    assert agent.history == [
        ChatMessage(role="user", content="hi"),
        ChatMessage(role="assistant", content=[TextBlock(text="Hello there")]),
    ]
    turn = agent.last_turn
    assert turn.display_texts == ["hi", "Hello there"]
    assert turn.input_tokens == 12
    assert turn.output_tokens == 7
    assert turn.tool_calls == 0


@pytest.mark.asyncio
async def test_single_completion_stops_calling_provider():
    provider = ScriptedProvider(text_turn("done"))
    events = await _collect(_agent(provider), "hi")

    assert sum(e.type == AgentEventType.COMPLETE for e in events) == 1
    assert events[-1].type == AgentEventType.COMPLETE
    assert len(provider.requests) == 1


@pytest.mark.asyncio
async def test_length_limit_counts_as_completion():
    provider = ScriptedProvider(text_turn("cut of", stop=StopReason.MAX_TOKENS))
    events = await _collect(_agent(provider), "hi")
    assert events[-1].type == AgentEventType.COMPLETE


@pytest.mark.asyncio
async def test_tools_dispatched_in_order_and_results_sent_back():
    calls = []
    registry = _registry(
        RecordingTool("search", result='{"hits": 1}', calls=calls),
        RecordingTool("get_client", result='{"id": 3}', calls=calls),
    )
    provider = ScriptedProvider(
        tool_turn(
            ("tu_a", "search", {"query": "Maria"}),
            ("tu_b", "get_client", {"id": 3}),
            preamble="Checking.",
        ),
        text_turn("Maria is client #3."),
    )
    agent = _agent(provider, registry)

    events = await _collect(agent, "Tell me about Maria")

    assert [(e.type, e.text or e.tool_name) for e in events] == [
        (AgentEventType.TEXT, "Checking."),
        (AgentEventType.TOOL, "search"),
        (AgentEventType.TOOL, "get_client"),
        (AgentEventType.TEXT, "Maria is client #3."),
        (AgentEventType.COMPLETE, None),
    ]
    assert calls == [("search", {"query": "Maria"}), ("get_client", {"id": 3})]

    assert len(provider.requests) == 2
    follow_up = provider.requests[1].messages[-1]
    assert follow_up == ChatMessage(role="user", content=[
        ToolResultBlock(tool_use_id="tu_a", content='{"hits": 1}'),
        ToolResultBlock(tool_use_id="tu_b", content='{"id": 3}'),
    ])
    assert provider.requests[1].messages[-2].content == [
        TextBlock(text="Checking."),
        ToolUseBlock(id="tu_a", name="search", input={"query": "Maria"}),
        ToolUseBlock(id="tu_b", name="get_client", input={"id": 3}),
    ]
    assert agent.last_turn.tool_calls == 2
    assert agent.last_turn.display_texts == ["Tell me about Maria", "Checking.", None, "Maria is client #3."]


@pytest.mark.asyncio
async def test_iteration_cap_emits_one_error():
    registry = _registry(RecordingTool("search"))
    provider = ScriptedProvider(tool_turn(("tu_1", "search", {"query": "x"})))
    agent = _agent(provider, registry)

    events = await _collect(agent, "loop forever")

    assert len(provider.requests) == 10
    errors = [e for e in events if e.type == AgentEventType.ERROR]
    assert len(errors) == 1
    assert errors[0].error == ITERATION_LIMIT_MESSAGE
    assert events[-1] is errors[0]
    assert not any(e.type == AgentEventType.COMPLETE for e in events)


@pytest.mark.asyncio
async def test_custom_iteration_cap():
    provider = ScriptedProvider(tool_turn(("tu_1", "search", {})))
    agent = _agent(provider, _registry(RecordingTool("search")), max_iterations=3)
    await _collect(agent, "go")
    assert len(provider.requests) == 3


@pytest.mark.asyncio
async def test_tool_failure_is_fed_back_to_model():
    registry = _registry(RecordingTool("search", error=RuntimeError("database offline")))
    provider = ScriptedProvider(
        tool_turn(("tu_1", "search", {"query": "x"})),
        text_turn("Search is unavailable right now."),
    )

    events = await _collect(_agent(provider, registry), "search x")

    assert events[-1].type == AgentEventType.COMPLETE
    result = provider.requests[1].messages[-1].content[0]
    assert result.tool_use_id == "tu_1"
    assert "database offline" in result.content


@pytest.mark.asyncio
async def test_provider_failure_keeps_only_committed_history():
    provider = ScriptedProvider([
        TextBlockStart(0),
        TextDelta(0, "partial"),
        LLMProviderError("connection reset"),
    ])
    agent = _agent(provider)

    events = await _collect(agent, "hi")

    assert [e.type for e in events] == [AgentEventType.TEXT, AgentEventType.ERROR]
    assert "connection reset" in events[-1].error
    assert agent.history == [ChatMessage(role="user", content="hi")]


@pytest.mark.asyncio
async def test_malformed_tool_json_ends_with_error():
    provider = ScriptedProvider([
        ToolUseBlockStart(0, "tu_1", "search"),
        InputJsonDelta(0, '{"query": '),
        MessageDelta(stop_reason=StopReason.TOOL_USE),
    ])
    agent = _agent(provider, _registry(RecordingTool("search")))

    events = await _collect(agent, "hi")

    assert [e.type for e in events] == [AgentEventType.ERROR]
    assert len(agent.history) == 1


@pytest.mark.asyncio
async def test_cancellation_propagates_and_leaves_history_committed():
    stall = asyncio.Event()
    provider = ScriptedProvider([TextBlockStart(0), TextDelta(0, "thinking"), stall])
    agent = _agent(provider)
    received = []

    async def consume():
        async for event in agent.send_message("hi"):
            received.append(event)

    task = asyncio.create_task(consume())
    while not received:
        await asyncio.sleep(0)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert agent.history == [ChatMessage(role="user", content="hi")]


@pytest.mark.asyncio
async def test_clear_history():
    agent = _agent(ScriptedProvider(text_turn("hi")))
    await _collect(agent, "hello")
    assert agent.history

    agent.clear_history()
    assert agent.history == []


@pytest.mark.asyncio
async def test_history_is_sent_on_next_message():
    provider = ScriptedProvider(text_turn("one"), text_turn("two"))
    agent = _agent(provider)
    agent.load_history([ChatMessage(role="user", content="earlier"), ChatMessage(role="assistant", content="ok")])

    await _collect(agent, "now")

    assert [m.content for m in provider.requests[0].messages] == ["earlier", "ok", "now"]


@pytest.mark.asyncio
async def test_system_prompt_includes_user_and_page_context():
    provider = ScriptedProvider(text_turn("hi"))
    agent = _agent(provider, _registry(RecordingTool("search")))
    agent.set_user_context("Dana Lee", "Nutritionist")
    agent.set_page_context("client", "42")

    await _collect(agent, "what about this client?")

    request = provider.requests[0]
    assert "Dana Lee (Nutritionist)" in request.system
    assert "client #42" in request.system
    assert [t["name"] for t in request.tools] == ["search"]


@pytest.mark.asyncio
async def test_explicit_zero_limits_are_respected():
    provider = ScriptedProvider(text_turn("hi"))
    agent = _agent(provider, max_iterations=0, max_tokens=0)
    assert agent.max_tokens == 0

    events = await _collect(agent, "hello")

    assert [e.error for e in events] == [ITERATION_LIMIT_MESSAGE]
    assert provider.requests == []

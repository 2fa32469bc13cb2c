"""
Tests for cowrite/agents/master_graph.py - the bounded reasoning loop.

Tests:
- Direct answers end the loop after one step
- Tool calls run in order and their results are fed back
- The step budget caps model calls
- Text and tool events reach the bus
- Tool failures go back to the model; model failures propagate
"""

import json

import pytest

from cowrite.agents.master_graph import route_after_model, route_after_tools, run_reasoning_loop
from cowrite.agents.state import create_initial_loop_state
from cowrite.core.events import EventBus, EventType
from cowrite.core.llm_client import LLMResponse, ToolCall
from cowrite.tools.registry import ToolDefinition, ToolRegistry


@pytest.fixture
def registry():
    calls = []
    registry = ToolRegistry()
    registry.register_tool(ToolDefinition(
        name="echo",
        description="Echo the text",
        function=lambda args: calls.append(args["text"]) or {"echo": args["text"]},
        parameters=["text"],
    ))
    registry.calls = calls
    return registry


async def run(llm, registry, max_steps=5, bus=None):
    return await run_reasoning_loop(
        llm=llm,
        model="test-model",
        system_prompt="You are a test.",
        messages=[{"role": "user", "content": "hi"}],
        registry=registry,
        max_steps=max_steps,
        bus=bus,
    )


class TestLoop:
    """Tests for run_reasoning_loop."""

    @pytest.mark.asyncio
    async def test_direct_answer(self, scripted_llm, registry, text_reply):
        scripted_llm.queue(text_reply("Hello"))

        result = await run(scripted_llm, registry)

        assert result.text == "Hello"
        assert result.steps == 1
        assert result.messages[-1] == {"role": "assistant", "content": "Hello"}
        assert scripted_llm.calls[0]["system_prompt"] == "You are a test."
        assert scripted_llm.calls[0]["tools"][0]["function"]["name"] == "echo"

    @pytest.mark.asyncio
    async def test_tool_results_fed_back(self, scripted_llm, registry, tool_reply, text_reply):
        scripted_llm.queue(tool_reply("echo", {"text": "ping"}), text_reply("pong"))

        result = await run(scripted_llm, registry)

        assert result.text == "pong"
        assert result.steps == 2
        assert [o.tool_name for o in result.tool_outputs] == ["echo"]
        tool_message = scripted_llm.calls[1]["messages"][-1]
        assert tool_message["role"] == "tool"
        assert tool_message["tool_call_id"] == "call_1"
        assert json.loads(tool_message["content"]) == {"echo": "ping"}

    @pytest.mark.asyncio
    async def test_calls_run_in_listed_order(self, scripted_llm, registry):
        scripted_llm.queue(LLMResponse(tool_calls=[
            ToolCall(id="a", name="echo", arguments={"text": "first"}),
            ToolCall(id="b", name="echo", arguments={"text": "second"}),
        ]))

        await run(scripted_llm, registry)

        assert registry.calls == ["first", "second"]

    @pytest.mark.asyncio
    async def test_step_budget(self, scripted_llm, registry, tool_reply):
        scripted_llm.queue(*[tool_reply("echo", {"text": str(i)}) for i in range(5)])

        result = await run(scripted_llm, registry, max_steps=2)

        assert len(scripted_llm.calls) == 2
        assert result.steps == 2
        assert len(result.tool_outputs) == 2

    @pytest.mark.asyncio
    async def test_unknown_tool_is_reported_to_model(self, scripted_llm, registry, tool_reply):
        scripted_llm.queue(tool_reply("missing", {}))

        result = await run(scripted_llm, registry)

        assert result.tool_outputs[0].success is False
        assert "Tool not found" in scripted_llm.calls[1]["messages"][-1]["content"]

    @pytest.mark.asyncio
    async def test_model_failure_propagates(self, scripted_llm, registry):
        scripted_llm.queue(RuntimeError("provider down"))

        with pytest.raises(RuntimeError, match="provider down"):
            await run(scripted_llm, registry)

    @pytest.mark.asyncio
    async def test_usage_accumulates(self, scripted_llm, registry, text_reply):
        scripted_llm.queue(text_reply("ok"))

        result = await run(scripted_llm, registry)

        assert result.usage.total_tokens == 15
        assert result.usage.model == "test-model"


class TestLoopEvents:
    """Tests for events published by the loop."""

    @pytest.mark.asyncio
    async def test_event_sequence(self, scripted_llm, registry, tool_reply, text_reply):
        bus = EventBus()
        queue = bus.subscribe()
        scripted_llm.queue(
            tool_reply("echo", {"text": "x"}, content="Let me check"),
            text_reply("Done"),
        )

        await run(scripted_llm, registry, bus=bus)

        types = []
        while not queue.empty():
            types.append(queue.get_nowait().type)
        assert types == [
            EventType.TEXT,
            EventType.TOOL_CALL_STARTED,
            EventType.TOOL_CALL_INPUT,
            EventType.TOOL_CALL_OUTPUT,
            EventType.TEXT,
        ]

    @pytest.mark.asyncio
    async def test_tool_error_event(self, scripted_llm, registry, tool_reply):
        bus = EventBus()
        queue = bus.subscribe()
        scripted_llm.queue(tool_reply("echo", {}))

        await run(scripted_llm, registry, bus=bus)

        types = []
        while not queue.empty():
            types.append(queue.get_nowait().type)
        assert EventType.TOOL_CALL_ERROR in types


class TestRouting:
    """Tests for the conditional edges."""

    def test_route_after_model(self):
        state = create_initial_loop_state([])
        assert route_after_model(state) == "__end__"
        state["pending_tool_calls"] = [{"id": "1", "name": "echo", "arguments": {}}]
        assert route_after_model(state) == "tool_execution"

    def test_route_after_tools(self):
        state = create_initial_loop_state([])
        assert route_after_tools(state) == "master_agent"
        state["done"] = True
        assert route_after_tools(state) == "__end__"

"""
Tests for cowrite/tools/delegation.py.

invoke_agent runs the specialist on the scripted LLM and tracks the call as
a DelegationTask on the turn's event stream.
"""

import pytest

from cowrite.agents.prompts import DEFAULT_MASTER_NAME
from cowrite.agents.state import TurnContext
from cowrite.core.events import EventBus, EventType
from cowrite.tools.delegation import create_agent, invoke_agent, register_delegation_tools
from cowrite.tools.registry import ToolRegistry


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def ctx(services, user_id, conversation, bus):
    return TurnContext(
        services=services,
        conversation_id=conversation["id"],
        user_id=user_id,
        bus=bus,
    )


def drain(queue):
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


class TestInvokeAgent:
    """Tests for invoke_agent."""

    @pytest.mark.asyncio
    async def test_success_tracks_task(self, ctx, bus, services, scripted_llm, text_reply):
        agent = services.catalog.create_agent(ctx.user_id, "Editor", "Fix grammar.")
        scripted_llm.queue(text_reply('Fixed text\n{"summary": "fixed", "detail": "all fixed"}'))
        queue = bus.subscribe()

        payload = await invoke_agent(ctx, {"agent_id": agent.id, "message": "Fix this"})

        assert payload == {
            "result": "Fixed text",
            "agent_name": "Editor",
            "summary": "fixed",
            "detail": "all fixed",
        }
        events = drain(queue)
        assert [e.type for e in events] == [
            EventType.DELEGATION_STARTED,
            EventType.DELEGATION_FINISHED,
        ]
        assert events[0].data["task"]["status"] == "running"
        assert events[1].data["task"]["status"] == "done"
        assert ctx.delegations[0].summary == "fixed"

    @pytest.mark.asyncio
    async def test_context_is_appended(self, ctx, services, scripted_llm):
        agent = services.catalog.create_agent(ctx.user_id, "Editor", "Fix grammar.")

        await invoke_agent(ctx, {"agent_id": agent.id, "message": "Fix", "context": "Draft v2"})

        content = scripted_llm.calls[0]["messages"][0]["content"]
        assert content == "Fix\n\nContext:\nDraft v2"

    @pytest.mark.asyncio
    async def test_missing_agent(self, ctx, scripted_llm):
        payload = await invoke_agent(ctx, {"agent_id": "ghost", "message": "hi"})

        assert payload["result"] == "Error: Agent ghost not found."
        assert payload["error"] == "Agent ghost not found"
        assert ctx.delegations[0].status == "error"
        assert scripted_llm.calls == []

    @pytest.mark.asyncio
    async def test_missing_agent_is_failed_tool_call(self, ctx, bus):
        registry = ToolRegistry(conversation_id=ctx.conversation_id)
        register_delegation_tools(registry, ctx)
        queue = bus.subscribe()

        output = await registry.invoke_tool("invoke_agent", {"agent_id": "ghost", "message": "hi"})

        assert output.success is False
        assert output.error == "Agent ghost not found"
        finished = drain(queue)[-1]
        assert finished.type == EventType.DELEGATION_FINISHED
        assert finished.data["task"]["status"] == "error"
        assert finished.data["task"]["error"] == "Agent ghost not found"

    @pytest.mark.asyncio
    async def test_model_failure_is_reported(self, ctx, services, scripted_llm):
        agent = services.catalog.create_agent(ctx.user_id, "Editor", "Fix grammar.")
        scripted_llm.queue(RuntimeError("rate limited"))

        payload = await invoke_agent(ctx, {"agent_id": agent.id, "message": "Fix"})

        assert payload["result"] == "Error: rate limited"
        assert payload["error"] == "rate limited"
        assert ctx.delegations[0].status == "error"


class TestCreateAgent:
    """Tests for the master's create_agent tool."""

    def test_subagent(self, ctx, services):
        result = create_agent(ctx, {"type": "subagent", "name": "Critic", "system_prompt": "Critique."})

        assert result["type"] == "subagent"
        assert services.catalog.get_agent(result["id"], ctx.user_id).name == "Critic"

    def test_subagent_requires_prompt(self, ctx):
        assert create_agent(ctx, {"type": "subagent", "name": "Critic"}) == {
            "error": "system_prompt is required"
        }

    def test_master_defaults(self, ctx, services):
        result = create_agent(ctx, {"type": "master"})

        master = services.catalog.get_master_agent(result["id"], ctx.user_id)
        assert master.name == DEFAULT_MASTER_NAME
        assert master.system_prompt

    def test_unknown_type(self, ctx):
        assert "error" in create_agent(ctx, {"type": "robot", "name": "x"})

    def test_out_of_range_steps(self, ctx):
        result = create_agent(
            ctx, {"type": "subagent", "name": "A", "system_prompt": "p", "max_steps": 0}
        )
        assert "error" in result

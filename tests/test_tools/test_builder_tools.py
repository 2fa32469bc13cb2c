"""
Tests for cowrite/tools/builder_tools.py and the turn registry builder.
"""

import pytest

from cowrite.agents.state import TurnContext
from cowrite.tools import builder_tools
from cowrite.tools.master_tools import build_turn_registry


@pytest.fixture
def builder_ctx(services, user_id):
    conv = services.conversations.get_or_create_builder_conversation(user_id)
    return TurnContext(services=services, conversation_id=conv["id"], user_id=user_id, is_builder=True)


class TestAgentTools:
    """Tests for the agent configuration tools."""

    def test_create_requires_prompt(self, builder_ctx):
        assert builder_tools.create_agent(builder_ctx, {"name": "Editor"}) == {
            "error": "system_prompt is required"
        }

    def test_create_get_update_delete(self, builder_ctx):
        created = builder_tools.create_agent(
            builder_ctx, {"name": "Editor", "system_prompt": "Fix grammar.", "max_steps": 3}
        )
        agent_id = created["id"]

        assert builder_tools.get_agent(builder_ctx, {"agent_id": agent_id})["max_steps"] == 3
        assert builder_tools.update_agent(builder_ctx, {"agent_id": agent_id, "name": " Copy "})["ok"]
        assert builder_tools.get_agent(builder_ctx, {"agent_id": agent_id})["name"] == "Copy"
        assert builder_tools.list_agents(builder_ctx, {})["agents"][0]["description"] == "Fix grammar."
        assert builder_tools.delete_agent(builder_ctx, {"agent_id": agent_id}) == {"ok": True}
        assert builder_tools.get_agent(builder_ctx, {"agent_id": agent_id}) == {"error": "Agent not found"}

    def test_update_out_of_range(self, builder_ctx):
        created = builder_tools.create_agent(builder_ctx, {"name": "A", "system_prompt": "p"})
        result = builder_tools.update_agent(builder_ctx, {"agent_id": created["id"], "max_steps": 99})
        assert "error" in result

    def test_focus_unknown(self, builder_ctx):
        assert builder_tools.focus_agent(builder_ctx, {"agent_id": "x"})["error"] == "Agent not found"


class TestKnowledgeAndFileTools:
    """Tests for knowledge and file tools."""

    def test_knowledge_round(self, builder_ctx):
        created = builder_tools.create_knowledge(
            builder_ctx, {"owner_type": "default", "type": "style", "content": "Short sentences"}
        )

        listed = builder_tools.list_knowledge(builder_ctx, {"owner_type": "default"})
        assert [i["content"] for i in listed["items"]] == ["Short sentences"]

        builder_tools.update_knowledge(builder_ctx, {"id": created["id"], "content": "Very short"})
        builder_tools.delete_knowledge(builder_ctx, {"id": created["id"]})
        assert builder_tools.list_knowledge(builder_ctx, {"owner_type": "default"})["items"] == []

    def test_invalid_knowledge_type(self, builder_ctx):
        result = builder_tools.create_knowledge(
            builder_ctx, {"owner_type": "default", "type": "facts", "content": "x"}
        )
        assert "error" in result

    def test_get_file_text_only_for_editable(self, services, builder_ctx):
        md = services.catalog.add_file(builder_ctx.user_id, "notes.md", "hello")
        pdf = services.catalog.add_file(builder_ctx.user_id, "paper.pdf", "extracted")

        assert builder_tools.get_file(builder_ctx, {"file_id": md.id})["text_content"] == "hello"
        assert "text_content" not in builder_tools.get_file(builder_ctx, {"file_id": pdf.id})
        assert "error" in builder_tools.update_file(
            builder_ctx, {"file_id": pdf.id, "text_content": "x"}
        )

    def test_file_assignments_validated(self, services, builder_ctx):
        f = services.catalog.add_file(builder_ctx.user_id, "notes.md", "hello")
        agent = builder_tools.create_agent(builder_ctx, {"name": "A", "system_prompt": "p"})

        bad = builder_tools.set_agent_file_assignments(
            builder_ctx, {"agent_id": agent["id"], "file_ids": [f.id, "missing"]}
        )
        good = builder_tools.set_agent_file_assignments(
            builder_ctx, {"agent_id": agent["id"], "file_ids": [f.id]}
        )

        assert bad == {"error": "Agent not found or invalid file ids"}
        assert good == {"ok": True}
        assert services.catalog.get_assigned_file_ids("agent", agent["id"]) == [f.id]


class TestTurnRegistry:
    """Tests for build_turn_registry."""

    def test_builder_tool_set(self, builder_ctx):
        registry = build_turn_registry(builder_ctx)
        assert "update_agent" in registry
        assert "write_to_doc" not in registry

    def test_master_tool_set(self, services, user_id, conversation):
        ctx = TurnContext(services=services, conversation_id=conversation["id"], user_id=user_id)
        names = {tool["name"] for tool in build_turn_registry(ctx).list_tools()}
        assert {"invoke_agent", "create_agent", "write_to_doc", "research",
                "remember", "recall", "list_docs"} <= names

    def test_master_configured_tools_merged(self, services, user_id, conversation):
        tool = services.catalog.create_tool(user_id, "weather", "Weather", {
            "url": "https://api.example.com/w", "method": "GET", "input_schema": {"type": "object"},
        })
        master = services.catalog.create_master_agent(user_id, "Main", tool_ids=[tool.id])
        ctx = TurnContext(services=services, conversation_id=conversation["id"],
                          user_id=user_id, master=master)

        registry = build_turn_registry(ctx)

        assert registry.tools["weather"].user_configured is True

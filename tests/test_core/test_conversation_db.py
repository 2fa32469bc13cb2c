"""
Tests for cowrite/core/db.py - ConversationDB.
"""

import pytest

from cowrite.core.db import (
    ConversationNotFoundError,
    DEFAULT_CONVERSATION_TITLE,
    BUILDER_CONVERSATION_TITLE,
    generate_conversation_title,
)


class TestConversations:
    """Tests for conversation CRUD."""

    def test_create_defaults(self, services, user_id):
        conv = services.conversations.create_conversation(user_id)
        assert conv["title"] == DEFAULT_CONVERSATION_TITLE
        assert conv["is_builder"] is False

    def test_require_unknown(self, services, user_id):
        with pytest.raises(ConversationNotFoundError):
            services.conversations.require_conversation("missing", user_id)

    def test_owner_scoping(self, services, user_id):
        conv = services.conversations.create_conversation(user_id)
        assert services.conversations.get_conversation(conv["id"], "someone-else") is None

    def test_update_title_and_unbind_master(self, services, user_id):
        conv = services.conversations.create_conversation(user_id, master_agent_id="m1")

        updated = services.conversations.update_conversation(
            conv["id"], user_id, title="Plan", master_agent_id=""
        )

        assert updated["title"] == "Plan"
        assert updated["master_agent_id"] is None

    def test_list_excludes_builder(self, services, user_id):
        services.conversations.create_conversation(user_id, title="Normal")
        services.conversations.get_or_create_builder_conversation(user_id)

        titles = [c["title"] for c in services.conversations.list_conversations(user_id)]
        assert titles == ["Normal"]
        assert len(services.conversations.list_conversations(user_id, include_builder=True)) == 2

    def test_builder_conversation_is_singleton(self, services, user_id):
        first = services.conversations.get_or_create_builder_conversation(user_id)
        second = services.conversations.get_or_create_builder_conversation(user_id)

        assert first["id"] == second["id"]
        assert first["is_builder"] is True
        assert first["title"] == BUILDER_CONVERSATION_TITLE


class TestMessages:
    """Tests for message history."""

    def test_messages_in_order(self, services, conversation):
        cid = conversation["id"]
        services.conversations.save_message(cid, "user", "hi")
        services.conversations.save_message(
            cid, "assistant", "hello", tool_calls=[{"name": "write_to_doc", "success": True}]
        )

        messages = services.conversations.get_messages(cid)

        assert [m["role"] for m in messages] == ["user", "assistant"]
        assert messages[1]["tool_calls"] == [{"name": "write_to_doc", "success": True}]
        assert services.conversations.get_message_count(cid) == 2

    def test_limit_keeps_most_recent(self, services, conversation):
        cid = conversation["id"]
        for i in range(5):
            services.conversations.save_message(cid, "user", f"m{i}")

        messages = services.conversations.get_messages(cid, limit=2)
        assert [m["content"] for m in messages] == ["m3", "m4"]

    def test_invalid_role(self, services, conversation):
        with pytest.raises(ValueError):
            services.conversations.save_message(conversation["id"], "tool", "x")


class TestTitleGeneration:
    """Tests for generate_conversation_title."""

    def test_whitespace_collapsed(self):
        assert generate_conversation_title("  Draft   an\nintro ") == "Draft an intro"

    def test_long_message_shortened(self):
        title = generate_conversation_title("word " * 40)
        assert len(title) <= 53

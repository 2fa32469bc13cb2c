"""
Tests for cowrite/core/knowledge.py - KnowledgeStore and the prompt block.
"""

import pytest

from cowrite.core.knowledge import TRUNCATION_MARKER, truncate_to_token_cap


class TestTruncation:
    """Tests for truncate_to_token_cap."""

    def test_short_text_unchanged(self):
        assert truncate_to_token_cap("abcd", 1) == "abcd"

    def test_long_text_marked(self):
        assert truncate_to_token_cap("abcdefgh", 1) == "abcd" + TRUNCATION_MARKER


class TestKnowledgeItems:
    """Tests for knowledge CRUD."""

    def test_default_items_have_no_owner(self, services, user_id):
        item = services.knowledge.create_item(user_id, "default", "rules", "  Be brief  ", owner_id="x")
        assert item.owner_id is None
        assert item.content == "Be brief"

    def test_owner_required(self, services, user_id):
        with pytest.raises(ValueError):
            services.knowledge.create_item(user_id, "agent", "rules", "x")

    def test_invalid_type(self, services, user_id):
        with pytest.raises(ValueError):
            services.knowledge.create_item(user_id, "default", "facts", "x")

    def test_list_filters_by_owner(self, services, user_id):
        services.knowledge.create_item(user_id, "default", "style", "plain")
        services.knowledge.create_item(user_id, "agent", "style", "mine", owner_id="a1")

        defaults = services.knowledge.list_items(user_id, owner_type="default", owner_id="")
        owned = services.knowledge.list_items(user_id, owner_type="agent", owner_id="a1")

        assert [i.content for i in defaults] == ["plain"]
        assert [i.content for i in owned] == ["mine"]

    def test_update_and_delete(self, services, user_id):
        item = services.knowledge.create_item(user_id, "default", "guidance", "old")

        updated = services.knowledge.update_item(item.id, user_id, content="new")

        assert updated.content == "new"
        assert services.knowledge.delete_item(item.id, user_id) is True
        assert services.knowledge.get_item(item.id, user_id) is None


class TestKnowledgeBlock:
    """Tests for build_knowledge_block."""

    def test_empty_block(self, services, user_id):
        assert services.knowledge.build_knowledge_block(user_id, "master", "m1") == ""

    def test_sections_in_type_order(self, services, user_id):
        services.knowledge.create_item(user_id, "master", "style", "Use headings", owner_id="m1")
        services.knowledge.create_item(user_id, "default", "guidance", "Help the user")
        services.knowledge.create_item(user_id, "master", "rules", "No jargon", owner_id="m1")

        block = services.knowledge.build_knowledge_block(user_id, "master", "m1")

        assert block.startswith("\n\n---\n")
        assert block.index("## Guidance") < block.index("## Rules") < block.index("## Style")
        assert "Help the user" in block

    def test_other_owner_excluded(self, services, user_id):
        services.knowledge.create_item(user_id, "master", "rules", "Secret", owner_id="other")
        assert "Secret" not in services.knowledge.build_knowledge_block(user_id, "master", "m1")

    def test_legacy_knowledge_fallback(self, services, user_id):
        block = services.knowledge.build_knowledge_block(
            user_id, "agent", "a1", legacy_knowledge="Old notes"
        )
        assert block == "\n\n---\n## Knowledge\nOld notes"

    def test_legacy_ignored_when_items_exist(self, services, user_id):
        services.knowledge.create_item(user_id, "agent", "rules", "New rule", owner_id="a1")
        block = services.knowledge.build_knowledge_block(
            user_id, "agent", "a1", legacy_knowledge="Old notes"
        )
        assert "Old notes" not in block

    def test_section_cap(self, services, user_id):
        services.knowledge.create_item(user_id, "default", "style", "x" * 2000)
        block = services.knowledge.build_knowledge_block(user_id, "agent", None)
        assert block.endswith(TRUNCATION_MARKER)
        assert block.count("x") == 200 * 4

"""
Tests for cowrite/tools/document_tools.py, research.py and memory.py.

Tools are called directly with a TurnContext; conflicts must come back as
error payloads, never as exceptions.
"""

import pytest

from cowrite.agents.state import TurnContext
from cowrite.core.documents import LockHolder
from cowrite.core.events import EventBus
from cowrite.tools.document_tools import (
    CONFLICT_MESSAGE,
    create_doc,
    delete_doc,
    list_docs,
    rename_doc,
    word_count,
    write_to_doc,
)
from cowrite.tools.memory import recall, remember
from cowrite.tools.research import PREVIEW_MAX_CHARS, research


@pytest.fixture
def ctx(services, user_id, conversation):
    return TurnContext(
        services=services,
        conversation_id=conversation["id"],
        user_id=user_id,
        bus=EventBus(),
    )


class TestWriteToDoc:
    """Tests for write_to_doc."""

    def test_append_and_replace(self, ctx):
        assert write_to_doc(ctx, {"mode": "append", "content": "Intro"})["ok"] is True
        write_to_doc(ctx, {"mode": "append", "content": "Body"})
        assert ctx.services.documents.get_document(ctx.conversation_id).content == "Intro\nBody"

        result = write_to_doc(ctx, {"mode": "replace", "content": "Fresh"})

        assert result["message"] == "Doc replaced."
        assert ctx.services.documents.get_document(ctx.conversation_id).content == "Fresh"

    def test_user_lock_is_conflict(self, ctx):
        doc = ctx.services.documents.get_document(ctx.conversation_id)
        ctx.services.documents.set_lock(doc.id, LockHolder.USER)

        result = write_to_doc(ctx, {"mode": "append", "content": "x"})

        assert result == {"error": CONFLICT_MESSAGE}
        assert ctx.services.documents.get_document(ctx.conversation_id).content == ""

    def test_invalid_mode(self, ctx):
        assert "error" in write_to_doc(ctx, {"mode": "prepend", "content": "x"})

    def test_unknown_doc(self, ctx):
        result = write_to_doc(ctx, {"mode": "append", "content": "x", "doc_id": "missing"})
        assert result == {"error": "Working doc not found"}

    def test_agent_write_keeps_user_history(self, ctx):
        write_to_doc(ctx, {"mode": "replace", "content": "draft"})
        assert ctx.services.documents.get_document(ctx.conversation_id).undo_stack == []


class TestDocTabs:
    """Tests for list/create/rename/delete/word_count."""

    def test_create_and_list(self, ctx):
        created = create_doc(ctx, {"title": "Outline", "content": "a b c"})

        listed = list_docs(ctx, {})

        assert [d["title"] for d in listed["docs"]] == ["Doc", "Outline"]
        assert word_count(ctx, {"doc_id": created["id"]})["word_count"] == 3

    def test_rename(self, ctx):
        doc = ctx.services.documents.get_document(ctx.conversation_id)
        assert rename_doc(ctx, {"doc_id": doc.id, "title": "Essay"})["title"] == "Essay"
        assert rename_doc(ctx, {"doc_id": "missing", "title": "x"}) == {"error": "Doc not found"}

    def test_delete_last_refused(self, ctx):
        doc = ctx.services.documents.get_document(ctx.conversation_id)
        assert delete_doc(ctx, {"doc_id": doc.id}) == {"error": "Cannot delete the last doc."}

    def test_delete_extra(self, ctx):
        created = create_doc(ctx, {"title": "Scratch"})
        assert delete_doc(ctx, {"doc_id": created["id"]})["ok"] is True

    def test_word_count_default_doc(self, ctx):
        write_to_doc(ctx, {"mode": "replace", "content": "one two"})
        assert word_count(ctx, {})["word_count"] == 2


class TestResearch:
    """Tests for the research tool."""

    def test_no_files(self, ctx):
        assert research(ctx, {}) == {"files": [], "message": "No uploaded files."}

    def test_list_mode_previews(self, ctx):
        ctx.services.catalog.add_file(ctx.user_id, "long.txt", "x" * (PREVIEW_MAX_CHARS + 50))

        result = research(ctx, {})

        preview = result["files"][0]["preview"]
        assert len(preview) == PREVIEW_MAX_CHARS + 1
        assert preview.endswith("…")

    def test_query_matches_name_or_content(self, ctx):
        catalog = ctx.services.catalog
        catalog.add_file(ctx.user_id, "Budget.csv", "numbers")
        catalog.add_file(ctx.user_id, "notes.md", "the BUDGET is tight")
        catalog.add_file(ctx.user_id, "other.md", "unrelated")

        result = research(ctx, {"query": "budget"})

        assert sorted(r["filename"] for r in result["results"]) == ["Budget.csv", "notes.md"]
        assert result["message"] == "Found 2 relevant file(s)."

    def test_master_assignments_restrict(self, ctx):
        catalog = ctx.services.catalog
        master = catalog.create_master_agent(ctx.user_id, "Main")
        visible = catalog.add_file(ctx.user_id, "visible.md", "a")
        catalog.add_file(ctx.user_id, "hidden.md", "b")
        catalog.set_file_assignments("master", master.id, [visible.id])
        ctx.master = master

        result = research(ctx, {})

        assert [f["filename"] for f in result["files"]] == ["visible.md"]


class TestMemory:
    """Tests for remember / recall."""

    def test_remember_and_recall(self, ctx):
        assert remember(ctx, {"content": "Prefers British spelling"})["ok"] is True
        remember(ctx, {"content": "Writes for engineers"})

        assert len(recall(ctx, {})["memories"]) == 2
        found = recall(ctx, {"query": "british"})["memories"]
        assert [m["content"] for m in found] == ["Prefers British spelling"]

    def test_blank_memory(self, ctx):
        assert remember(ctx, {"content": "  "}) == {"error": "content is required"}

    def test_recall_empty(self, ctx):
        assert recall(ctx, {})["memories"] == []

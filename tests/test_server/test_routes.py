"""
Tests for the FastAPI server (cowrite/server).

The app is built around the test Services bundle so every route runs on
the temporary database and the scripted LLM.
"""

import json

import pytest
from fastapi.testclient import TestClient

from cowrite import __version__
from cowrite.core.documents import LockHolder
from cowrite.server.main import create_app, parse_args


@pytest.fixture
def client(services):
    with TestClient(create_app(services)) as client:
        yield client


@pytest.fixture
def conv_id(client):
    return client.post("/api/conversations", json={}).json()["id"]


class TestHealth:
    def test_health(self, client):
        data = client.get("/api/health").json()
        assert data["status"] == "healthy"
        assert data["version"] == __version__
        assert data["uptime_seconds"] is not None

    def test_root(self, client):
        assert client.get("/").json()["name"] == "Cowrite Server"


class TestConversationRoutes:
    """Conversation CRUD."""

    def test_create_with_default_doc(self, client, services):
        data = client.post("/api/conversations", json={"title": "Essay"}).json()

        assert data["title"] == "Essay"
        assert data["message_count"] == 0
        assert len(services.documents.list_documents(data["id"])) == 1

    def test_list_excludes_builder(self, client, conv_id):
        client.get("/api/builder/conversation")

        ids = [c["id"] for c in client.get("/api/conversations").json()]

        assert ids == [conv_id]

    def test_builder_conversation_is_stable(self, client):
        first = client.get("/api/builder/conversation").json()
        second = client.get("/api/builder/conversation").json()
        assert first["id"] == second["id"]
        assert first["is_builder"] is True

    def test_get_update_delete(self, client, conv_id):
        assert client.get(f"/api/conversations/{conv_id}").status_code == 200

        renamed = client.patch(f"/api/conversations/{conv_id}", json={"title": "Owls"})
        assert renamed.json()["title"] == "Owls"

        assert client.delete(f"/api/conversations/{conv_id}").json() == {"success": True}
        assert client.get(f"/api/conversations/{conv_id}").status_code == 404

    def test_unknown_master_agent(self, client):
        response = client.post("/api/conversations", json={"master_agent_id": "ghost"})
        assert response.status_code == 404
        assert response.json()["detail"] == "Master agent not found"

    def test_unknown_conversation(self, client):
        assert client.get("/api/conversations/missing/doc").status_code == 404
        assert client.get("/api/conversations/missing/messages").status_code == 404


class TestDocumentRoutes:
    """Document routes and the lock arbiter over HTTP."""

    def test_default_doc(self, client, conv_id):
        data = client.get(f"/api/conversations/{conv_id}/doc").json()

        assert data["title"] == "Doc"
        assert data["content"] == ""
        assert data["lock_holder"] is None

    def test_user_edit_records_history(self, client, conv_id):
        client.patch(f"/api/conversations/{conv_id}/doc", json={"content": "v1"})
        data = client.patch(f"/api/conversations/{conv_id}/doc", json={"content": "v2"}).json()

        assert data["content"] == "v2"
        assert data["undo_stack"] == ["v1", ""]
        assert data["redo_stack"] == []

    def test_agent_lock_conflict(self, client, services, conv_id):
        doc = services.documents.get_document(conv_id)
        services.documents.set_lock(doc.id, LockHolder.AGENT)

        response = client.patch(f"/api/conversations/{conv_id}/doc", json={"content": "mine"})

        assert response.status_code == 409
        assert services.documents.get_document(conv_id).content == ""

    def test_take_control(self, client, services, conv_id):
        doc = services.documents.get_document(conv_id)
        services.documents.set_lock(doc.id, LockHolder.AGENT)

        taken = client.post(f"/api/conversations/{conv_id}/docs/{doc.id}/take-control").json()
        written = client.patch(f"/api/conversations/{conv_id}/doc", json={"content": "mine"})

        assert taken["lock_holder"] == "user"
        assert written.status_code == 200

    def test_lock_only_update(self, client, conv_id):
        locked = client.patch(f"/api/conversations/{conv_id}/doc", json={"lock_holder": "user"})
        released = client.patch(f"/api/conversations/{conv_id}/doc", json={"lock_holder": None})

        assert locked.json()["lock_holder"] == "user"
        assert released.json()["lock_holder"] is None

    def test_explicit_stacks(self, client, conv_id):
        data = client.patch(
            f"/api/conversations/{conv_id}/doc",
            json={"content": "b", "undo_stack": ["a"], "redo_stack": ["c"]},
        ).json()
        assert (data["undo_stack"], data["redo_stack"]) == (["a"], ["c"])

        half = client.patch(
            f"/api/conversations/{conv_id}/doc", json={"content": "x", "undo_stack": ["a"]}
        )
        assert half.status_code == 400

    def test_undo_redo(self, client, conv_id):
        doc_id = client.patch(f"/api/conversations/{conv_id}/doc", json={"content": "v1"}).json()["id"]
        base = f"/api/conversations/{conv_id}/docs/{doc_id}"

        undone = client.post(f"{base}/undo").json()
        redone = client.post(f"{base}/redo").json()

        assert undone["content"] == ""
        assert undone["redo_stack"] == ["v1"]
        assert redone["content"] == "v1"
        assert client.post(f"{base}/redo").status_code == 400

    def test_undo_empty_history(self, client, conv_id):
        doc_id = client.get(f"/api/conversations/{conv_id}/doc").json()["id"]
        assert client.post(f"/api/conversations/{conv_id}/docs/{doc_id}/undo").status_code == 400

    def test_tabs(self, client, conv_id):
        base = f"/api/conversations/{conv_id}/docs"
        created = client.post(base, json={"title": "Notes", "content": "n"}).json()

        assert [d["title"] for d in client.get(base).json()] == ["Doc", "Notes"]
        assert client.patch(f"{base}/{created['id']}", json={"title": "Ideas"}).json()["title"] == "Ideas"
        assert client.get(f"{base}/{created['id']}").json()["content"] == "n"
        assert client.delete(f"{base}/{created['id']}").json() == {"success": True}

    def test_last_doc_not_deleted(self, client, conv_id):
        doc_id = client.get(f"/api/conversations/{conv_id}/doc").json()["id"]
        assert client.delete(f"/api/conversations/{conv_id}/docs/{doc_id}").status_code == 400

    def test_doc_from_other_conversation(self, client, conv_id):
        other = client.post("/api/conversations", json={}).json()["id"]
        doc_id = client.get(f"/api/conversations/{other}/doc").json()["id"]

        assert client.get(f"/api/conversations/{conv_id}/docs/{doc_id}").status_code == 404


class TestChatRoutes:
    """Chat turns over HTTP."""

    def test_chat(self, client, scripted_llm, text_reply, conv_id):
        scripted_llm.queue(text_reply("Hello there"))

        data = client.post(f"/api/conversations/{conv_id}/chat", json={"message": "hi"}).json()

        assert data["text"] == "Hello there"
        assert data["steps"] == 1
        messages = client.get(f"/api/conversations/{conv_id}/messages").json()
        assert [m["role"] for m in messages] == ["user", "assistant"]

    def test_empty_message_rejected(self, client, conv_id):
        response = client.post(f"/api/conversations/{conv_id}/chat", json={"message": ""})
        assert response.status_code == 422

    def test_blank_message_rejected(self, client, conv_id):
        response = client.post(f"/api/conversations/{conv_id}/chat", json={"message": "   "})
        assert response.status_code == 400

    def test_model_failure(self, client, scripted_llm, services, conv_id):
        scripted_llm.queue(RuntimeError("provider down"))

        response = client.post(f"/api/conversations/{conv_id}/chat", json={"message": "hi"})

        assert response.status_code == 500
        assert services.documents.get_document(conv_id).lock_holder == LockHolder.NONE

    def test_stream(self, client, scripted_llm, tool_reply, text_reply, conv_id):
        scripted_llm.queue(
            tool_reply("write_to_doc", {"mode": "append", "content": "Owls"}),
            text_reply("Done"),
        )

        response = client.post(
            f"/api/conversations/{conv_id}/chat/stream", json={"message": "write"}
        )

        assert response.headers["content-type"].startswith("application/x-ndjson")
        events = [json.loads(line) for line in response.text.splitlines() if line]
        types = [e["type"] for e in events]
        assert types[0] == "turn_started"
        assert types[-1] == "turn_completed"
        assert "tool_call_output" in types
        assert events[-1]["text"] == "Done"
        assert client.get(f"/api/conversations/{conv_id}/doc").json()["content"] == "Owls"

    def test_stream_failure_event(self, client, scripted_llm, conv_id):
        scripted_llm.queue(RuntimeError("provider down"))

        response = client.post(
            f"/api/conversations/{conv_id}/chat/stream", json={"message": "hi"}
        )

        events = [json.loads(line) for line in response.text.splitlines() if line]
        assert events[-1]["type"] == "turn_failed"
        assert events[-1]["error"] == "provider down"

    def test_stream_unknown_conversation(self, client):
        response = client.post("/api/conversations/missing/chat/stream", json={"message": "hi"})
        assert response.status_code == 404


class TestCli:
    def test_parse_args(self):
        args = parse_args(["--port", "9000", "--reload"])
        assert args.port == 9000
        assert args.reload is True
        assert args.host == "127.0.0.1"

"""
Pytest Configuration and Shared Fixtures for Cowrite.

Provides common fixtures for:
- Temporary settings and database
- A scripted LLM client (queued responses, recorded calls)
- Services bundle and a ready conversation
- Global event bus reset
"""

import copy
from typing import Any, Dict, List, Optional

import pytest

from cowrite.agents.runtime import create_services
from cowrite.core.events import reset_event_bus
from cowrite.core.llm_client import LLMResponse, ToolCall, TokenUsage
from cowrite.core.settings import SettingsManager, set_settings_manager


# ============================================================================
# SETTINGS FIXTURES
# ============================================================================

@pytest.fixture
def settings_manager(tmp_path):
    """
    SettingsManager writing config.json under tmp_path.

    The database lives beside it and routing hints are off unless a test
    turns them on.
    """
    manager = SettingsManager(config_dir=tmp_path / "config")
    manager.set_preference("database_path", str(tmp_path / "cowrite.db"))
    manager.set_preference("routing_hints", False)
    return manager


# ============================================================================
# LLM FIXTURES
# ============================================================================

class ScriptedLLM:
    """
    Stand-in for LLMClient.

    Each generate() call pops the next queued item: an LLMResponse is
    returned, an Exception is raised. An empty queue answers "done".
    """

    def __init__(self, settings):
        self.settings = settings
        self.responses: List[Any] = []
        self.calls: List[Dict[str, Any]] = []

    def queue(self, *items) -> "ScriptedLLM":
        self.responses.extend(items)
        return self

    async def generate(self, model, messages, system_prompt=None, tools=None,
                       temperature=0.7, max_tokens=4096) -> LLMResponse:
        self.calls.append({
            "model": model,
            "messages": copy.deepcopy(messages),
            "system_prompt": system_prompt,
            "tools": tools,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        item = self.responses.pop(0) if self.responses else text_response("done")
        if isinstance(item, Exception):
            raise item
        return item


def text_response(content: str) -> LLMResponse:
    return LLMResponse(content=content, usage=TokenUsage(prompt_tokens=10, completion_tokens=5,
                                                         total_tokens=15))


def tool_response(name: str, arguments: Dict[str, Any], call_id: str = "call_1",
                  content: Optional[str] = None) -> LLMResponse:
    return LLMResponse(
        content=content,
        tool_calls=[ToolCall(id=call_id, name=name, arguments=arguments)],
        finish_reason="tool_calls",
    )


@pytest.fixture
def scripted_llm(settings_manager):
    return ScriptedLLM(settings_manager)


# ============================================================================
# STORE FIXTURES
# ============================================================================

@pytest.fixture
def services(settings_manager, scripted_llm):
    """Services on a temporary database with the scripted LLM."""
    set_settings_manager(settings_manager)
    yield create_services(settings=settings_manager, llm=scripted_llm)
    set_settings_manager(None)


@pytest.fixture
def user_id(services):
    return services.settings.get_user_id()


@pytest.fixture
def conversation(services, user_id):
    """A fresh conversation with its default document."""
    conv = services.conversations.create_conversation(user_id)
    services.documents.get_document(conv["id"])
    return conv


# ============================================================================
# CLEANUP FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def cleanup_event_bus():
    """Reset the global event bus after each test."""
    yield
    reset_event_bus()


@pytest.fixture
def text_reply():
    """Factory fixture: text_reply("hi") -> LLMResponse without tool calls."""
    return text_response


@pytest.fixture
def tool_reply():
    """Factory fixture: tool_reply(name, args, call_id=...) -> LLMResponse with one call."""
    return tool_response

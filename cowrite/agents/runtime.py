"""
Orchestration Runtime for Cowrite.

Provides the entrypoint for one conversation turn:
- Pre-acquire the agent lock on every document of the conversation
- Persist the user message
- Assemble the master system prompt (roster, router hint, knowledge, doc)
- Run the bounded reasoning loop with the turn's tool set
- Release the lock on every exit path, then persist the assistant reply

Usage:
    from cowrite.agents.runtime import create_services, run_turn

    services = create_services()
    result = await run_turn(services, conversation_id, "Draft an intro paragraph")
    print(result.text)

The AI Builder conversation follows the same path but never locks
documents and uses the builder tool set.
"""

import logging
from pathlib import Path
from typing import Optional, List, Dict, Any

import httpx

from cowrite.agents.master_graph import run_reasoning_loop
from cowrite.agents.prompts import (
    MASTER_SYSTEM_PROMPT,
    BUILDER_SYSTEM_PROMPT,
    NO_AGENTS_TEXT,
    AGENT_LIST_HEADER,
    ROUTING_HINT_TEMPLATE,
    DOCUMENT_SECTION_TEMPLATE,
    format_agent_line,
)
from cowrite.agents.router import AgentSuggestion, suggest_agent
from cowrite.agents.state import (
    Services,
    TurnContext,
    TurnResult,
    SessionPhase,
    MESSAGE_HISTORY_LIMIT,
    MASTER_MAX_STEPS_DEFAULT,
    MASTER_MAX_STEPS_LIMIT,
)
from cowrite.core.catalog import CatalogStore, SpecialistAgent, MasterAgentConfig
from cowrite.core.db import ConversationDB, DEFAULT_CONVERSATION_TITLE, generate_conversation_title
from cowrite.core.documents import DocumentStore, LockHolder
from cowrite.core.events import (
    EventBus,
    get_event_bus,
    emit_turn_started,
    emit_turn_completed,
    emit_turn_failed,
    emit_lock_acquired,
    emit_lock_released,
)
from cowrite.core.knowledge import KnowledgeStore
from cowrite.core.llm_client import LLMClient
from cowrite.core.settings import SettingsManager, get_settings_manager
from cowrite.tools.master_tools import build_turn_registry

logger = logging.getLogger(__name__)


# ============================================================================
# SERVICES
# ============================================================================

def create_services(
    settings: Optional[SettingsManager] = None,
    db_path: Optional[Path] = None,
    llm: Optional[LLMClient] = None
) -> Services:
    """
    Build the long-lived stores and clients on one database file.

    Args:
        settings: Settings manager (default: the global one).
        db_path: Database file (default: settings database path).
        llm: LLM client (default: a client on `settings`).
    """
    settings = settings or get_settings_manager()
    db_path = db_path or settings.get_database_path()
    logger.info(f"Using database at {db_path}")
    return Services(
        conversations=ConversationDB(db_path),
        documents=DocumentStore(db_path),
        catalog=CatalogStore(db_path),
        knowledge=KnowledgeStore(db_path),
        settings=settings,
        llm=llm or LLMClient(settings),
    )


# ============================================================================
# PROMPT ASSEMBLY
# ============================================================================

def resolve_max_steps(master: Optional[MasterAgentConfig], settings: SettingsManager) -> int:
    """Master config first, then the master_max_steps preference; clamped to 1..100."""
    steps = master.max_steps if master and master.max_steps else None
    if steps is None:
        steps = settings.get_preference("master_max_steps", MASTER_MAX_STEPS_DEFAULT)
    try:
        steps = int(steps)
    except (TypeError, ValueError):
        steps = MASTER_MAX_STEPS_DEFAULT
    return min(max(steps, 1), MASTER_MAX_STEPS_LIMIT)


def build_agent_list_text(agents: List[SpecialistAgent]) -> str:
    if not agents:
        return NO_AGENTS_TEXT
    lines = [f"- {format_agent_line(a.name, a.id, a.description)}" for a in agents]
    return AGENT_LIST_HEADER + "\n" + "\n".join(lines)


def build_master_system_prompt(
    master: Optional[MasterAgentConfig],
    knowledge_block: str,
    agents: List[SpecialistAgent],
    document_content: str,
    suggestion: Optional[AgentSuggestion] = None
) -> str:
    """
    Assemble the master system prompt.

    Layout: base prompt (+ the master's own prompt), knowledge block, agent
    list (+ routing hint), then the current document between --- lines.
    """
    prompt = MASTER_SYSTEM_PROMPT
    if master is not None and master.system_prompt.strip():
        prompt += "\n\n" + master.system_prompt.strip()
    prompt += knowledge_block
    prompt += "\n\n" + build_agent_list_text(agents)
    if suggestion is not None:
        prompt += "\n\n" + ROUTING_HINT_TEMPLATE.format(
            name=suggestion.agent_name, id=suggestion.agent_id
        )
    prompt += "\n\n" + DOCUMENT_SECTION_TEMPLATE.format(content=document_content)
    return prompt


def history_to_llm_messages(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Persisted rows to OpenAI-format messages (role and content only)."""
    return [
        {"role": row["role"], "content": row["content"] or ""}
        for row in rows
        if row["role"] in ("user", "assistant")
    ]


# ============================================================================
# TURN ENTRYPOINT
# ============================================================================

async def run_turn(
    services: Services,
    conversation_id: str,
    user_message: str,
    user_id: Optional[str] = None,
    bus: Optional[EventBus] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> TurnResult:
    """
    Run one orchestration turn.

    Args:
        services: Stores, settings and LLM client.
        conversation_id: Target conversation.
        user_message: The user's message (must not be blank).
        user_id: Owner key (default: settings user id).
        bus: Event bus for this turn (default: the global bus).
        transport: Optional httpx transport for configured HTTP tools.

    Returns:
        TurnResult with the assistant text.

    Raises:
        ConversationNotFoundError: Unknown conversation.
        ValueError: Blank message (raised before any lock is taken).
        Exception: Model or persistence failures, after the lock is released.
    """
    settings = services.settings
    user_id = user_id or settings.get_user_id()
    conversation = services.conversations.require_conversation(conversation_id, user_id)
    if not user_message or not user_message.strip():
        raise ValueError("Message must not be empty")

    is_builder = bool(conversation["is_builder"])
    master: Optional[MasterAgentConfig] = None
    if not is_builder and conversation.get("master_agent_id"):
        master = services.catalog.get_master_agent(conversation["master_agent_id"], user_id)

    ctx = TurnContext(
        services=services,
        conversation_id=conversation_id,
        user_id=user_id,
        master=master,
        bus=bus or get_event_bus(),
        is_builder=is_builder,
    )

    agents: List[SpecialistAgent] = []
    suggestion: Optional[AgentSuggestion] = None
    if not is_builder:
        agents = services.catalog.list_agents(user_id)
        if agents and settings.get_preference("routing_hints", True):
            suggestion = await suggest_agent(
                user_message, agents, llm=services.llm, model=settings.get_model("router")
            )

    logger.info(f"Turn started in {conversation_id} (builder={is_builder})")
    await emit_turn_started(conversation_id, ctx.bus)

    try:
        if not is_builder:
            services.documents.set_conversation_lock(conversation_id, LockHolder.AGENT)
            ctx.phase = SessionPhase.LOCK_ACQUIRED
            await emit_lock_acquired(conversation_id, ctx.bus)
        try:
            loop = await _run_locked(ctx, conversation, user_message, agents, suggestion, transport)
        finally:
            if not is_builder:
                services.documents.set_conversation_lock(conversation_id, LockHolder.NONE)
                await emit_lock_released(conversation_id, ctx.bus)
            ctx.phase = SessionPhase.FINALIZING

        services.conversations.save_message(
            conversation_id,
            "assistant",
            loop.text,
            tool_calls=[
                {"name": o.tool_name, "success": o.success, "error": o.error}
                for o in loop.tool_outputs
            ] or None,
        )
    except Exception as e:
        logger.error(f"Turn failed in {conversation_id}: {e}", exc_info=True)
        await emit_turn_failed(conversation_id, str(e), ctx.bus)
        raise
    finally:
        ctx.phase = SessionPhase.IDLE

    await emit_turn_completed(conversation_id, loop.text, loop.steps, ctx.bus)
    logger.info(
        f"Turn completed in {conversation_id}: steps={loop.steps}, "
        f"tools={len(loop.tool_outputs)}, tokens={loop.usage.total_tokens}"
    )
    return TurnResult(
        conversation_id=conversation_id,
        text=loop.text,
        steps=loop.steps,
        tool_outputs=loop.tool_outputs,
        delegations=ctx.delegations,
        suggested_agent_id=suggestion.agent_id if suggestion else None,
    )


async def _run_locked(
    ctx: TurnContext,
    conversation: Dict[str, Any],
    user_message: str,
    agents: List[SpecialistAgent],
    suggestion: Optional[AgentSuggestion],
    transport: Optional[httpx.AsyncBaseTransport]
):
    """Body of the turn between lock acquisition and release."""
    services = ctx.services
    conversation_id = ctx.conversation_id

    services.conversations.save_message(conversation_id, "user", user_message)
    if conversation["title"] == DEFAULT_CONVERSATION_TITLE:
        services.conversations.update_conversation(
            conversation_id, ctx.user_id, title=generate_conversation_title(user_message)
        )

    if ctx.is_builder:
        system_prompt = BUILDER_SYSTEM_PROMPT
    else:
        knowledge_block = services.knowledge.build_knowledge_block(
            ctx.user_id, "master", ctx.master_agent_id
        )
        document = services.documents.get_document(conversation_id)
        system_prompt = build_master_system_prompt(
            ctx.master, knowledge_block, agents, document.content, suggestion
        )

    history = services.conversations.get_messages(conversation_id, limit=MESSAGE_HISTORY_LIMIT * 2)
    model = (ctx.master.model if ctx.master and ctx.master.model else None) \
        or services.settings.get_model("master_agent")

    return await run_reasoning_loop(
        llm=services.llm,
        model=model,
        system_prompt=system_prompt,
        messages=history_to_llm_messages(history),
        registry=build_turn_registry(ctx, transport=transport),
        max_steps=resolve_max_steps(ctx.master, services.settings),
        bus=ctx.bus,
        turn=ctx,
    )


__all__ = [
    "create_services",
    "run_turn",
    "resolve_max_steps",
    "build_agent_list_text",
    "build_master_system_prompt",
    "history_to_llm_messages",
]

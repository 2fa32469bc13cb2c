"""
Turn State Schema for Cowrite.

Defines the state carried through one orchestration turn:
- LoopState: the LangGraph state of the bounded reasoning loop
- ToolOutput: structured result of a tool execution
- DelegationTask: ephemeral record of one specialist invocation
- Services / TurnContext: collaborators and per-turn context handed to tools
- TurnResult: what a finished turn returns to the HTTP layer

Memory Policy:
- The last MESSAGE_HISTORY_LIMIT turns of persisted history are replayed
  to the model verbatim
- Tool call / tool result messages live only inside the turn
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TypedDict, List, Optional, Dict, Any, Literal, TYPE_CHECKING
from pydantic import BaseModel, Field

from cowrite.core.db import new_id, now_iso

if TYPE_CHECKING:
    from cowrite.core.catalog import CatalogStore, MasterAgentConfig
    from cowrite.core.db import ConversationDB
    from cowrite.core.documents import DocumentStore
    from cowrite.core.events import EventBus
    from cowrite.core.knowledge import KnowledgeStore
    from cowrite.core.llm_client import LLMClient
    from cowrite.core.settings import SettingsManager


# ============================================================================
# CONSTANTS
# ============================================================================

# Memory policy: replay the last N turns of history
MESSAGE_HISTORY_LIMIT = 20

MASTER_MAX_STEPS_DEFAULT = 10
MASTER_MAX_STEPS_LIMIT = 100


# ============================================================================
# SESSION PHASES
# ============================================================================

class SessionPhase(str, Enum):
    """Where a turn currently is."""

    IDLE = "idle"
    LOCK_ACQUIRED = "lock_acquired"
    REASONING = "reasoning"
    TOOL_CALLING = "tool_calling"
    FINALIZING = "finalizing"


# ============================================================================
# TOOL RESULT MODELS
# ============================================================================

class ToolOutput(BaseModel):
    """
    Structured output from a tool execution.

    Attributes:
        tool_name: Name of the tool that was executed.
        success: Whether the tool executed successfully.
        result: Tool output (structured or string).
        error: Error message if tool failed (optional).
        timestamp: ISO timestamp of execution.
    """
    tool_name: str = Field(..., description="Name of the tool that was executed")
    success: bool = Field(..., description="Whether the tool executed successfully")
    result: Any = Field(..., description="Tool output (structured or string)")
    error: Optional[str] = Field(None, description="Error message if tool failed")
    timestamp: str = Field(default_factory=now_iso, description="ISO timestamp of execution")


class DelegationTask(BaseModel):
    """
    One specialist invocation, surfaced to the UI while it runs.

    Never persisted; lives in the turn's event stream only.
    """
    id: str = Field(default_factory=new_id)
    agent_id: str
    agent_name: Optional[str] = None
    message: str = ""
    status: Literal["running", "done", "error"] = "running"
    summary: Optional[str] = None
    error: Optional[str] = None
    started_at: str = Field(default_factory=now_iso)
    finished_at: Optional[str] = None

    def finish(self, error: Optional[str] = None, summary: Optional[str] = None) -> "DelegationTask":
        self.status = "error" if error else "done"
        self.error = error
        self.summary = summary
        self.finished_at = now_iso()
        return self


# ============================================================================
# REASONING LOOP STATE
# ============================================================================

class LoopState(TypedDict):
    """
    LangGraph state of the bounded reasoning loop.

    messages: OpenAI-format history for this loop (user, assistant with
        tool_calls, tool results).
    pending_tool_calls: Calls requested by the last model step, in order.
    text: Text of the most recent model step.
    steps: Model calls made so far.
    done: True once the model answered without tool calls.
    tool_outputs: Every tool result of the loop, in execution order.
    """

    messages: List[Dict[str, Any]]
    pending_tool_calls: List[Dict[str, Any]]
    text: str
    steps: int
    done: bool
    tool_outputs: List[ToolOutput]
    prompt_tokens: int
    completion_tokens: int


def create_initial_loop_state(messages: List[Dict[str, Any]]) -> LoopState:
    """
    Create the starting state for a reasoning loop.

    Args:
        messages: Prior history plus the new user message (OpenAI format).
    """
    return LoopState(
        messages=list(messages),
        pending_tool_calls=[],
        text="",
        steps=0,
        done=False,
        tool_outputs=[],
        prompt_tokens=0,
        completion_tokens=0,
    )


# ============================================================================
# TURN CONTEXT
# ============================================================================

@dataclass
class Services:
    """Long-lived collaborators shared by every turn."""

    conversations: "ConversationDB"
    documents: "DocumentStore"
    catalog: "CatalogStore"
    knowledge: "KnowledgeStore"
    settings: "SettingsManager"
    llm: "LLMClient"


@dataclass
class TurnContext:
    """
    Per-turn context handed to tools.

    Attributes:
        services: Stores, settings and LLM client.
        conversation_id: Conversation the turn runs in.
        user_id: Owner key for every store call.
        master: Master agent configuration bound to the conversation, if any.
        bus: Event bus for this turn's events.
        is_builder: Whether this is the agent-configuration conversation.
        phase: Current session phase.
        delegations: Specialist invocations made during the turn.
    """

    services: Services
    conversation_id: str
    user_id: str
    master: Optional["MasterAgentConfig"] = None
    bus: Optional["EventBus"] = None
    is_builder: bool = False
    phase: SessionPhase = SessionPhase.IDLE
    delegations: List[DelegationTask] = field(default_factory=list)

    @property
    def master_agent_id(self) -> Optional[str]:
        return self.master.id if self.master else None


# ============================================================================
# TURN RESULT
# ============================================================================

class TurnResult(BaseModel):
    """Outcome of a completed turn."""
    conversation_id: str
    text: str
    steps: int = 0
    tool_outputs: List[ToolOutput] = Field(default_factory=list)
    delegations: List[DelegationTask] = Field(default_factory=list)
    suggested_agent_id: Optional[str] = None


__all__ = [
    "SessionPhase",
    "ToolOutput",
    "DelegationTask",
    "LoopState",
    "create_initial_loop_state",
    "Services",
    "TurnContext",
    "TurnResult",
    "MESSAGE_HISTORY_LIMIT",
    "MASTER_MAX_STEPS_DEFAULT",
    "MASTER_MAX_STEPS_LIMIT",
]

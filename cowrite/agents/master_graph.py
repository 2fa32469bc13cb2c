"""
Reasoning Loop Graph for Cowrite.

Implements the bounded tool-calling loop (hub-and-spoke) shared by the
master agent and by specialists that have tools:
- master_agent_node: the brain (one model call per visit)
- tool_execution_node: the hands (runs every requested tool call, in order)

Loop contract:
- The model is called at most `max_steps` times
- A model step without tool calls ends the loop
- Tool calls from one step run sequentially in the order the model listed them
- Tool failures are returned to the model as error payloads; model failures
  propagate to the caller

LangGraph Architecture:
- The graph is compiled once and reused; per-run collaborators (LLM client,
  tool registry, event bus) travel in config["configurable"]["loop"]
- No checkpointer: a turn's loop state never outlives the turn
"""

import logging
from dataclasses import dataclass, field
from typing import Literal, Optional, Dict, Any, List

from langchain_core.runnables import RunnableConfig
from langgraph.graph import StateGraph, END

from cowrite.agents.state import (
    LoopState,
    ToolOutput,
    TurnContext,
    SessionPhase,
    create_initial_loop_state,
)
from cowrite.core.events import (
    EventBus,
    emit_text,
    emit_tool_call_started,
    emit_tool_call_input,
    emit_tool_call_output,
    emit_tool_call_error,
)
from cowrite.core.llm_client import LLMClient, LLMResponse, TokenUsage
from cowrite.tools.registry import ToolRegistry, render_tool_result

logger = logging.getLogger(__name__)


# ============================================================================
# LOOP CONTEXT
# ============================================================================

@dataclass
class LoopContext:
    """
    Per-run collaborators of the reasoning loop.

    Attributes:
        llm: Client used for every model step.
        model: Model identifier.
        system_prompt: System prompt for every step.
        registry: Tools available to the model.
        max_steps: Upper bound on model calls.
        bus: Event bus for text and tool events (None: emit nothing).
        temperature: Sampling temperature.
        turn: Turn context whose phase is tracked (optional).
    """

    llm: LLMClient
    model: str
    system_prompt: str
    registry: ToolRegistry
    max_steps: int
    bus: Optional[EventBus] = None
    temperature: float = 0.7
    turn: Optional[TurnContext] = None

    def set_phase(self, phase: SessionPhase) -> None:
        if self.turn is not None:
            self.turn.phase = phase


@dataclass
class LoopResult:
    """Outcome of one reasoning loop."""

    text: str
    steps: int
    messages: List[Dict[str, Any]]
    tool_outputs: List[ToolOutput] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)


def _loop_context(config: RunnableConfig) -> LoopContext:
    return config["configurable"]["loop"]


# ============================================================================
# NODES
# ============================================================================

async def master_agent_node(state: LoopState, config: RunnableConfig) -> Dict[str, Any]:
    """
    Master Agent Node - one model step.

    Responsibilities:
    1. Call the model with the loop's history, system prompt and tools
    2. Record token usage
    3. Decide outcome:
       - Tool calls -> record them as pending, transition to tool_execution
       - Direct answer -> mark done, END

    Args:
        state: Current LoopState.
        config: Run config carrying the LoopContext.

    Returns:
        State update.
    """
    ctx = _loop_context(config)
    ctx.set_phase(SessionPhase.REASONING)

    tool_schemas = ctx.registry.get_tool_schemas()
    logger.info(
        f"LLM call: model={ctx.model}, step={state['steps'] + 1}/{ctx.max_steps}, "
        f"tools={len(tool_schemas)}"
    )
    response: LLMResponse = await ctx.llm.generate(
        model=ctx.model,
        messages=state["messages"],
        system_prompt=ctx.system_prompt,
        tools=tool_schemas if tool_schemas else None,
        temperature=ctx.temperature,
    )
    logger.info(
        f"LLM response: tokens={response.usage.total_tokens}, "
        f"tool_calls={len(response.tool_calls)}"
    )

    text = response.content or ""
    if text and ctx.bus is not None:
        await emit_text(text, ctx.bus)

    messages = list(state["messages"])
    update: Dict[str, Any] = {
        "steps": state["steps"] + 1,
        "text": text,
        "prompt_tokens": state["prompt_tokens"] + response.usage.prompt_tokens,
        "completion_tokens": state["completion_tokens"] + response.usage.completion_tokens,
    }

    if response.tool_calls:
        messages.append({
            "role": "assistant",
            "content": response.content,
            "tool_calls": [tc.to_openai() for tc in response.tool_calls],
        })
        update["pending_tool_calls"] = [
            {"id": tc.id, "name": tc.name, "arguments": tc.arguments}
            for tc in response.tool_calls
        ]
    else:
        messages.append({"role": "assistant", "content": text})
        update["pending_tool_calls"] = []
        update["done"] = True

    update["messages"] = messages
    return update


async def tool_execution_node(state: LoopState, config: RunnableConfig) -> Dict[str, Any]:
    """
    Tool Execution Node - run every pending tool call in order.

    Each result is appended to the history as a `tool` message answering
    its call id, so the next model step sees every outcome.

    Args:
        state: Current LoopState.
        config: Run config carrying the LoopContext.

    Returns:
        State update.
    """
    ctx = _loop_context(config)
    ctx.set_phase(SessionPhase.TOOL_CALLING)

    messages = list(state["messages"])
    outputs: List[ToolOutput] = []

    for call in state["pending_tool_calls"]:
        call_id, name, args = call["id"], call["name"], call["arguments"]

        if ctx.bus is not None:
            await emit_tool_call_started(call_id, name, ctx.bus)
            await emit_tool_call_input(call_id, name, args, ctx.bus)

        output = await ctx.registry.invoke_tool(name, args)
        outputs.append(output)

        if ctx.bus is not None:
            if output.success:
                await emit_tool_call_output(call_id, name, output.result, ctx.bus)
            else:
                await emit_tool_call_error(call_id, name, output.error or "Tool failed", ctx.bus)

        messages.append({
            "role": "tool",
            "tool_call_id": call_id,
            "content": render_tool_result(output),
        })

    update: Dict[str, Any] = {
        "messages": messages,
        "pending_tool_calls": [],
        "tool_outputs": list(state["tool_outputs"]) + outputs,
    }
    if state["steps"] >= ctx.max_steps:
        logger.warning(f"Step budget exhausted after {state['steps']} step(s)")
        update["done"] = True
    return update


# ============================================================================
# ROUTING LOGIC
# ============================================================================

def route_after_model(state: LoopState) -> Literal["tool_execution", "__end__"]:
    if state["pending_tool_calls"]:
        return "tool_execution"
    return END


def route_after_tools(state: LoopState) -> Literal["master_agent", "__end__"]:
    """Go back to the model unless the step budget is spent."""
    if state["done"]:
        return END
    return "master_agent"


# ============================================================================
# GRAPH CONSTRUCTION
# ============================================================================

def create_reasoning_graph():
    """
    Create the reasoning loop graph.

    Returns:
        Compiled StateGraph (no checkpointer).
    """
    workflow = StateGraph(LoopState)

    workflow.add_node("master_agent", master_agent_node)
    workflow.add_node("tool_execution", tool_execution_node)

    workflow.set_entry_point("master_agent")

    workflow.add_conditional_edges(
        "master_agent",
        route_after_model,
        {
            "tool_execution": "tool_execution",
            END: END
        }
    )

    workflow.add_conditional_edges(
        "tool_execution",
        route_after_tools,
        {
            "master_agent": "master_agent",
            END: END
        }
    )

    app = workflow.compile()
    logger.info("Reasoning graph compiled successfully")
    return app


_reasoning_graph = None


def get_reasoning_graph():
    """Compiled reasoning graph (built on first use)."""
    global _reasoning_graph
    if _reasoning_graph is None:
        _reasoning_graph = create_reasoning_graph()
    return _reasoning_graph


async def run_reasoning_loop(
    llm: LLMClient,
    model: str,
    system_prompt: str,
    messages: List[Dict[str, Any]],
    registry: ToolRegistry,
    max_steps: int,
    bus: Optional[EventBus] = None,
    temperature: float = 0.7,
    turn: Optional[TurnContext] = None
) -> LoopResult:
    """
    Run the bounded reasoning loop to completion.

    Args:
        llm: LLM client.
        model: Model identifier.
        system_prompt: System prompt for every step.
        messages: History ending with the new user message (OpenAI format).
        registry: Tools available to the model.
        max_steps: Upper bound on model calls (at least 1).
        bus: Event bus for text and tool events; None emits nothing.
        temperature: Sampling temperature.
        turn: Turn context whose phase should be tracked.

    Returns:
        LoopResult with the final text and every tool output.

    Raises:
        Exception: Whatever the model call raised.
    """
    max_steps = max(1, int(max_steps))
    loop = LoopContext(
        llm=llm,
        model=model,
        system_prompt=system_prompt,
        registry=registry,
        max_steps=max_steps,
        bus=bus,
        temperature=temperature,
        turn=turn,
    )

    final_state = await get_reasoning_graph().ainvoke(
        create_initial_loop_state(messages),
        config={"configurable": {"loop": loop}, "recursion_limit": max_steps * 2 + 5},
    )

    prompt_tokens = final_state["prompt_tokens"]
    completion_tokens = final_state["completion_tokens"]
    return LoopResult(
        text=final_state["text"],
        steps=final_state["steps"],
        messages=final_state["messages"],
        tool_outputs=final_state["tool_outputs"],
        usage=TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            model=model,
        ),
    )


__all__ = [
    "LoopContext",
    "LoopResult",
    "master_agent_node",
    "tool_execution_node",
    "route_after_model",
    "route_after_tools",
    "create_reasoning_graph",
    "get_reasoning_graph",
    "run_reasoning_loop",
]

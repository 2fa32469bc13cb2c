"""
Specialist delegation.

A specialist is a user-created agent with its own instructions, model,
knowledge and (optionally) HTTP tools. The master reaches it through the
invoke_agent tool; the specialist answers one message and never sees the
master's conversation.

Execution:
- No tools: a single model call; the prompt invites an optional trailing
  JSON line {"summary": ..., "detail": ...}
- With tools: the bounded reasoning loop (no events), step budget
  max(2, max_steps or 5)

Failures never propagate: they come back as {"result": "Error: ...", "error": ...}
so the master can tell the user what went wrong.
"""

import json
import logging
from typing import Optional, Tuple, Dict, Any

import httpx
from pydantic import BaseModel

from cowrite.agents.master_graph import run_reasoning_loop
from cowrite.agents.prompts import STRUCTURED_OUTPUT_HINT
from cowrite.agents.state import Services
from cowrite.tools.http_tools import register_http_tools
from cowrite.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


SPECIALIST_DEFAULT_STEPS = 5
SPECIALIST_MIN_STEPS = 2


class SpecialistResult(BaseModel):
    """What invoke_agent hands back to the master."""
    result: str
    agent_name: Optional[str] = None
    summary: Optional[str] = None
    detail: Optional[str] = None
    error: Optional[str] = None

    def to_tool_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"result": self.result, "agent_name": self.agent_name}
        if self.summary is not None:
            payload["summary"] = self.summary
        if self.detail is not None:
            payload["detail"] = self.detail
        if self.error is not None:
            payload["error"] = self.error
        return payload


def parse_structured_output(text: str) -> Tuple[str, Optional[str], Optional[str]]:
    """
    Split an optional trailing {"summary", "detail"} JSON line off a response.

    Returns:
        (text without the JSON line, summary, detail). When the last line is
        not such an object the text comes back unchanged; when nothing but
        the JSON line was sent, the text is detail (else summary).

    Example:
        >>> parse_structured_output('Long answer\\n{"summary": "short", "detail": "long"}')
        ('Long answer', 'short', 'long')
    """
    stripped = text.rstrip()
    head, _, last_line = stripped.rpartition("\n")
    candidate = last_line.strip()
    if not (candidate.startswith("{") and candidate.endswith("}")):
        return text, None, None
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        return text, None, None
    if not isinstance(data, dict):
        return text, None, None

    summary = data.get("summary") if isinstance(data.get("summary"), str) else None
    detail = data.get("detail") if isinstance(data.get("detail"), str) else None
    if summary is None and detail is None:
        return text, None, None
    return head.rstrip() or detail or summary, summary, detail


async def run_specialist(
    services: Services,
    user_id: str,
    agent_id: str,
    message: str,
    context: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> SpecialistResult:
    """
    Run one specialist on one message.

    Args:
        services: Stores, settings and LLM client.
        user_id: Owner of the specialist.
        agent_id: Specialist id.
        message: Task for the specialist.
        context: Optional extra context appended to the message.
        transport: Optional httpx transport for the specialist's HTTP tools.

    Returns:
        SpecialistResult (never raises for model or tool failures).
    """
    agent = services.catalog.get_agent(agent_id, user_id)
    if agent is None:
        logger.warning(f"Specialist {agent_id} not found")
        return SpecialistResult(
            result=f"Error: Agent {agent_id} not found.",
            error=f"Agent {agent_id} not found",
        )

    model = agent.model or services.settings.get_model("specialist_default")

    registry = ToolRegistry()
    if agent.tool_ids:
        records = services.catalog.get_tools(user_id, agent.tool_ids)
        register_http_tools(registry, records, services.settings, transport=transport)
    has_tools = len(registry) > 0

    system_prompt = agent.system_prompt + services.knowledge.build_knowledge_block(
        user_id, "agent", agent.id, legacy_knowledge=agent.knowledge
    )
    if not has_tools:
        system_prompt += "\n\n" + STRUCTURED_OUTPUT_HINT

    content = message
    if context:
        content += f"\n\nContext:\n{context}"
    messages = [{"role": "user", "content": content}]

    logger.info(
        f"Running specialist {agent.id} ('{agent.name}') model={model} tools={len(registry)}"
    )
    try:
        if has_tools:
            max_steps = max(SPECIALIST_MIN_STEPS, agent.max_steps or SPECIALIST_DEFAULT_STEPS)
            loop = await run_reasoning_loop(
                llm=services.llm,
                model=model,
                system_prompt=system_prompt,
                messages=messages,
                registry=registry,
                max_steps=max_steps,
            )
            text = loop.text
        else:
            response = await services.llm.generate(
                model=model,
                messages=messages,
                system_prompt=system_prompt,
            )
            text = response.content or ""
    except Exception as e:
        logger.error(f"Specialist {agent.id} failed: {e}", exc_info=True)
        return SpecialistResult(result=f"Error: {e}", agent_name=agent.name, error=str(e))

    result, summary, detail = parse_structured_output(text)
    return SpecialistResult(result=result, agent_name=agent.name, summary=summary, detail=detail)


__all__ = [
    "SpecialistResult",
    "parse_structured_output",
    "run_specialist",
]

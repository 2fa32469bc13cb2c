"""
Delegation router: suggest which specialist (if any) fits a user message.

The suggestion is only a hint. The runtime renders it as one advisory line
in the master's system prompt and the master is free to ignore it. Any
failure degrades to "no suggestion".
"""

import logging
from typing import List, Optional

from pydantic import BaseModel

from cowrite.agents.prompts import build_router_prompt, format_agent_line
from cowrite.core.catalog import SpecialistAgent
from cowrite.core.llm_client import LLMClient

logger = logging.getLogger(__name__)


class AgentSuggestion(BaseModel):
    agent_id: str
    agent_name: str


def _match(raw_text: str, roster: List[SpecialistAgent]) -> Optional[SpecialistAgent]:
    raw = raw_text.strip().lower()
    if not raw or raw == "none":
        return None
    first_line = raw.split("\n")[0].strip()

    for agent in roster:
        if agent.id == first_line or agent.id.lower() == first_line:
            return agent
    for agent in roster:
        if agent.id in first_line or agent.id.lower() in raw:
            return agent
    return None


async def suggest_agent(
    user_message: str,
    roster: List[SpecialistAgent],
    llm: Optional[LLMClient] = None,
    model: Optional[str] = None
) -> Optional[AgentSuggestion]:
    """
    Ask a small model which specialist best matches the message.

    Args:
        user_message: The user's message (truncated to 1500 chars in the prompt).
        roster: Candidate specialists.
        llm: LLM client (default: a new client on the global settings).
        model: Router model (default: settings "router" model).

    Returns:
        AgentSuggestion, or None for an empty roster, a "none" answer, an
        unmatched answer, or any error.
    """
    if not roster:
        return None

    try:
        llm = llm or LLMClient()
        model = model or llm.settings.get_model("router")
        prompt = build_router_prompt(
            user_message,
            [format_agent_line(a.name, a.id, a.description) for a in roster],
        )
        response = await llm.generate(
            model=model,
            messages=[{"role": "user", "content": prompt}],
            temperature=0.0,
            max_tokens=64,
        )
    except Exception as e:
        logger.warning(f"suggest.error error={e}")
        return None

    text = response.content or ""
    found = _match(text, roster)
    if found is None:
        logger.info(f"suggest.no_match raw={text.strip()!r}")
        return None

    logger.info(f"suggest.matched agent_id={found.id} agent_name={found.name}")
    return AgentSuggestion(agent_id=found.id, agent_name=found.name)


__all__ = ["AgentSuggestion", "suggest_agent"]

"""
Tool Registry for Cowrite.

Provides tool registration and execution for the reasoning loop.
Maps tool names to async functions and handles structured invocation.

Architecture:
- Tools are registered with metadata (name, description, JSON schema)
- The reasoning loop requests tools by name, in the order the model asked
- Registry validates required arguments and invokes tools
- Results returned as ToolOutput models; invoke_tool never raises

Safety:
- Reserved names cannot be taken by user-configured tools
- Every invocation is logged with timing (tool.execute_start / _finish / _error)
"""

import inspect
import json
import logging
import time
from typing import Dict, Any, Callable, Optional, List

from cowrite.agents.state import ToolOutput
from cowrite.core.guardrails import truncate_tool_output

logger = logging.getLogger(__name__)


RESERVED_TOOL_NAMES = ("invoke_agent", "write_to_doc", "research", "create_agent")

ARG_SUMMARY_MAX_CHARS = 80


# ============================================================================
# TOOL METADATA
# ============================================================================

class ToolDefinition:
    """
    Tool metadata for registration.

    Attributes:
        name: Tool name (unique identifier).
        description: Human-readable description (shown to the model).
        function: Callable taking the argument dict; may be async.
        parameters: List of required parameter names.
        schema: JSON schema of the arguments object.
        user_configured: True for tools built from user configuration.
    """

    def __init__(
        self,
        name: str,
        description: str,
        function: Callable,
        parameters: Optional[List[str]] = None,
        schema: Optional[Dict[str, Any]] = None,
        user_configured: bool = False
    ):
        self.name = name
        self.description = description
        self.function = function
        self.parameters = parameters or []
        self.schema = schema or {
            "type": "object",
            "properties": {},
            "required": list(self.parameters),
        }
        self.user_configured = user_configured

    def to_openai(self) -> Dict[str, Any]:
        """OpenAI function-calling schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.schema,
            }
        }


def summarize_args(args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Compact argument summary for logs.

    Strings are reduced to their length past ARG_SUMMARY_MAX_CHARS; lists and
    dicts to their size.
    """
    summary: Dict[str, Any] = {}
    for key, value in args.items():
        if isinstance(value, str) and len(value) > ARG_SUMMARY_MAX_CHARS:
            summary[f"{key}_length"] = len(value)
        elif isinstance(value, (list, dict)):
            summary[f"{key}_count"] = len(value)
        else:
            summary[key] = value
    return summary


# ============================================================================
# TOOL REGISTRY
# ============================================================================

class ToolRegistry:
    """
    Tool registry for one reasoning loop.

    Example:
        >>> registry = ToolRegistry(conversation_id="c1")
        >>> register_document_tools(registry, ctx)
        >>> result = await registry.invoke_tool("word_count", {})
        >>> result.success
        True
    """

    def __init__(self, conversation_id: Optional[str] = None):
        """
        Args:
            conversation_id: Included in log lines (None for specialist loops).
        """
        self.conversation_id = conversation_id
        self.tools: Dict[str, ToolDefinition] = {}

    def __contains__(self, name: str) -> bool:
        return name in self.tools

    def __len__(self) -> int:
        return len(self.tools)

    def register_tool(self, tool: ToolDefinition) -> None:
        """
        Register a tool.

        Raises:
            ValueError: If the name is taken, or reserved for a user-configured tool.
        """
        if tool.user_configured and tool.name in RESERVED_TOOL_NAMES:
            raise ValueError(f"Tool name is reserved: {tool.name}")
        if tool.name in self.tools:
            raise ValueError(f"Tool already registered: {tool.name}")

        self.tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def list_tools(self) -> List[Dict[str, Any]]:
        return [
            {"name": tool.name, "description": tool.description, "user_configured": tool.user_configured}
            for tool in self.tools.values()
        ]

    def get_tool_schemas(self) -> List[Dict[str, Any]]:
        """
        Get OpenAI-format tool schemas for function calling.

        Returns:
            One schema per registered tool, in registration order.
        """
        return [tool.to_openai() for tool in self.tools.values()]

    async def invoke_tool(
        self,
        tool_name: str,
        args: Dict[str, Any]
    ) -> ToolOutput:
        """
        Invoke a registered tool.

        A returned dict carrying an "error" key counts as a failed call; the
        payload is kept as the result so the model can read it.

        Args:
            tool_name: Name of tool to invoke.
            args: Tool arguments.

        Returns:
            ToolOutput with success/error status and result.
        """
        args = args or {}
        logger.info(
            f"tool.execute_start tool={tool_name} conversation={self.conversation_id} "
            f"args={summarize_args(args)}"
        )
        start = time.monotonic()

        tool = self.tools.get(tool_name)
        if tool is None:
            logger.warning(f"tool.execute_error tool={tool_name} duration_ms=0 error=unknown tool")
            return ToolOutput(
                tool_name=tool_name,
                success=False,
                result={"error": f"Tool not found: {tool_name}"},
                error=f"Tool not found: {tool_name}",
            )

        missing_params = [p for p in tool.parameters if p not in args]
        if missing_params:
            error = f"Missing required parameters: {missing_params}"
            logger.warning(f"tool.execute_error tool={tool_name} duration_ms=0 error={error}")
            return ToolOutput(tool_name=tool_name, success=False, result={"error": error}, error=error)

        try:
            result = tool.function(args)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.warning(f"tool.execute_error tool={tool_name} duration_ms={duration_ms} error={e}")
            return ToolOutput(
                tool_name=tool_name,
                success=False,
                result={"error": str(e)},
                error=str(e),
            )

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(f"tool.execute_finish tool={tool_name} duration_ms={duration_ms}")

        if isinstance(result, ToolOutput):
            return result
        if isinstance(result, dict) and result.get("error"):
            return ToolOutput(tool_name=tool_name, success=False, result=result, error=str(result["error"]))
        return ToolOutput(tool_name=tool_name, success=True, result=result)


def render_tool_result(output: ToolOutput) -> str:
    """Serialize a tool result as the content of a `tool` message."""
    payload = output.result if output.result not in (None, "") else {"error": output.error}
    if isinstance(payload, str):
        return truncate_tool_output(payload)
    return truncate_tool_output(json.dumps(payload, default=str))


__all__ = [
    "ToolRegistry",
    "ToolDefinition",
    "RESERVED_TOOL_NAMES",
    "summarize_args",
    "render_tool_result",
]

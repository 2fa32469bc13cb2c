"""
User-configured HTTP tools.

A user can define tools of type "api" with a config of the form:

    {
        "url": "https://api.example.com/lookup",
        "method": "GET",
        "headers": {"Authorization": "Bearer ..."},
        "input_schema": {"type": "object", "properties": {...}}
    }

At turn start the configured tools for a master agent or specialist are
turned into ToolDefinitions. Tools are skipped (never registered) when:
- the name is reserved
- the type is not "api"
- the config is incomplete
- the URL fails the outbound allow-list (see core.guardrails)

Execution:
- GET: arguments become the query string
- other methods: arguments are sent as a JSON body
- non-2xx responses come back as {"error": "API returned N", "body": text}
- JSON responses are returned parsed, anything else as {"result": text}
"""

import logging
from typing import Dict, Any, List, Optional
from urllib.parse import urlencode, urlsplit

import httpx

from cowrite.core.catalog import ToolRecord
from cowrite.core.guardrails import is_url_allowed
from cowrite.core.settings import SettingsManager
from cowrite.tools.registry import ToolRegistry, ToolDefinition, RESERVED_TOOL_NAMES

logger = logging.getLogger(__name__)


DEFAULT_HTTP_TIMEOUT = 30.0


# ============================================================================
# CONFIG PARSING
# ============================================================================

class ApiToolConfig:
    """Parsed config of an "api" tool."""

    def __init__(self, url: str, method: str, headers: Dict[str, str], input_schema: Dict[str, Any]):
        self.url = url
        self.method = method.upper() or "GET"
        self.headers = headers
        self.input_schema = input_schema

    @classmethod
    def parse(cls, config: Dict[str, Any]) -> Optional["ApiToolConfig"]:
        """Return the parsed config, or None if a required key is missing or mistyped."""
        if not isinstance(config, dict):
            return None
        url = config.get("url")
        method = config.get("method")
        input_schema = config.get("input_schema", config.get("inputSchema"))
        headers = config.get("headers") or {}
        if not isinstance(url, str) or not isinstance(method, str):
            return None
        if not isinstance(input_schema, dict) or not isinstance(headers, dict):
            return None
        return cls(url, method, {str(k): str(v) for k, v in headers.items()}, input_schema)


def _url_for_log(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.netloc}{parts.path}" if parts.netloc else url


# ============================================================================
# EXECUTION
# ============================================================================

async def call_http_tool(
    tool_name: str,
    config: ApiToolConfig,
    args: Dict[str, Any],
    timeout: float = DEFAULT_HTTP_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> Any:
    """
    Perform the HTTP request for one tool call.

    Args:
        tool_name: For logging.
        config: Parsed tool config.
        args: Arguments from the model.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests use httpx.MockTransport).

    Returns:
        Parsed JSON, {"result": text}, or {"error": ..., "body": ...} on non-2xx.

    Raises:
        httpx.HTTPError: Network failures propagate to the registry, which
            reports them as a failed tool call.
    """
    method = config.method
    url = config.url
    headers = dict(config.headers)
    body: Optional[Dict[str, Any]] = None

    if args and method == "GET":
        query = urlencode({k: str(v) for k, v in args.items() if v is not None})
        if query:
            url = url + ("&" if "?" in url else "?") + query
    elif args:
        headers.setdefault("Content-Type", "application/json")
        body = args

    logger.info(f"tool.http_request tool={tool_name} method={method} url={_url_for_log(url)}")
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        response = await client.request(method, url, headers=headers, json=body)

    text = response.text
    if not response.is_success:
        logger.warning(f"tool.http_response tool={tool_name} status={response.status_code}")
        return {"error": f"API returned {response.status_code}", "body": text}

    logger.info(f"tool.http_response tool={tool_name} status={response.status_code}")
    try:
        return response.json()
    except ValueError:
        return {"result": text}


# ============================================================================
# TOOL BUILDING
# ============================================================================

def build_http_tools(
    records: List[ToolRecord],
    settings: SettingsManager,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> List[ToolDefinition]:
    """
    Turn configured tool records into ToolDefinitions, skipping unusable ones.

    Args:
        records: Tool records (already filtered to the owner's tool ids).
        settings: Supplies app base URL, dev mode and timeout.
        transport: Optional httpx transport passed through to every call.
    """
    app_base_url = settings.get_app_base_url()
    dev_mode = settings.is_dev_mode()
    timeout = float(settings.get_preference("http_tool_timeout", DEFAULT_HTTP_TIMEOUT))

    definitions: List[ToolDefinition] = []
    for record in records:
        if record.name in RESERVED_TOOL_NAMES:
            logger.warning(f"Skipping tool '{record.name}': reserved name")
            continue
        if record.type != "api":
            continue
        config = ApiToolConfig.parse(record.config)
        if config is None:
            logger.warning(f"Skipping tool '{record.name}': invalid config")
            continue
        if not is_url_allowed(config.url, app_base_url=app_base_url, dev_mode=dev_mode):
            logger.warning(f"Skipping tool '{record.name}': URL not allowed")
            continue

        definitions.append(ToolDefinition(
            name=record.name,
            description=record.description,
            function=_make_caller(record.name, config, timeout, transport),
            parameters=[p for p in config.input_schema.get("required", []) if isinstance(p, str)],
            schema=config.input_schema,
            user_configured=True,
        ))
    return definitions


def _make_caller(tool_name: str, config: ApiToolConfig, timeout: float, transport):
    async def _call(args: Dict[str, Any]) -> Any:
        return await call_http_tool(tool_name, config, args, timeout=timeout, transport=transport)
    return _call


def register_http_tools(
    registry: ToolRegistry,
    records: List[ToolRecord],
    settings: SettingsManager,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> List[str]:
    """
    Merge configured HTTP tools into a registry.

    Names already registered (built-in tools) win; the configured tool is
    skipped.

    Returns:
        Names of the tools that were registered.
    """
    registered: List[str] = []
    for definition in build_http_tools(records, settings, transport=transport):
        if definition.name in registry:
            logger.warning(f"Skipping tool '{definition.name}': name already registered")
            continue
        registry.register_tool(definition)
        registered.append(definition.name)
    return registered


__all__ = [
    "ApiToolConfig",
    "call_http_tool",
    "build_http_tools",
    "register_http_tools",
]

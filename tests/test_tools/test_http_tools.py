"""
Tests for cowrite/tools/http_tools.py - user-configured HTTP tools.

All requests go through httpx.MockTransport - NO real network calls.
"""

import json

import httpx
import pytest

from cowrite.tools.http_tools import (
    ApiToolConfig,
    build_http_tools,
    call_http_tool,
    register_http_tools,
)
from cowrite.tools.registry import ToolRegistry, ToolDefinition


SCHEMA = {
    "type": "object",
    "properties": {"city": {"type": "string"}},
    "required": ["city"],
}


def make_config(method="GET", url="https://api.example.com/weather", **extra):
    return {"url": url, "method": method, "input_schema": SCHEMA, **extra}


class Recorder:
    """MockTransport handler that records requests and replies with a fixed response."""

    def __init__(self, status=200, json_body=None, text=None):
        self.requests = []
        self.status = status
        self.json_body = json_body
        self.text = text

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.json_body is not None:
            return httpx.Response(self.status, json=self.json_body)
        return httpx.Response(self.status, text=self.text or "")


class TestApiToolConfig:
    """Tests for ApiToolConfig.parse."""

    def test_accepts_camel_case_schema(self):
        config = ApiToolConfig.parse({"url": "https://x.test", "method": "post", "inputSchema": SCHEMA})
        assert config.method == "POST"
        assert config.input_schema == SCHEMA

    @pytest.mark.parametrize("raw", [
        {"method": "GET", "input_schema": SCHEMA},
        {"url": "https://x.test", "input_schema": SCHEMA},
        {"url": "https://x.test", "method": "GET"},
        {"url": "https://x.test", "method": "GET", "input_schema": SCHEMA, "headers": "bad"},
        "not a dict",
    ])
    def test_incomplete_config(self, raw):
        assert ApiToolConfig.parse(raw) is None


class TestCallHttpTool:
    """Tests for call_http_tool."""

    @pytest.mark.asyncio
    async def test_get_sends_query_string(self):
        handler = Recorder(json_body={"temp": 21})
        config = ApiToolConfig.parse(make_config(headers={"X-Key": "k"}))

        result = await call_http_tool(
            "weather", config, {"city": "Oslo"}, transport=httpx.MockTransport(handler)
        )

        assert result == {"temp": 21}
        request = handler.requests[0]
        assert request.method == "GET"
        assert request.url.params["city"] == "Oslo"
        assert request.headers["X-Key"] == "k"

    @pytest.mark.asyncio
    async def test_post_sends_json_body(self):
        handler = Recorder(json_body={"ok": True})
        config = ApiToolConfig.parse(make_config(method="POST"))

        await call_http_tool("weather", config, {"city": "Oslo"}, transport=httpx.MockTransport(handler))

        request = handler.requests[0]
        assert json.loads(request.content) == {"city": "Oslo"}
        assert request.headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        handler = Recorder(text="sunny")
        config = ApiToolConfig.parse(make_config())

        result = await call_http_tool("weather", config, {}, transport=httpx.MockTransport(handler))

        assert result == {"result": "sunny"}

    @pytest.mark.asyncio
    async def test_error_status(self):
        handler = Recorder(status=503, text="down")
        config = ApiToolConfig.parse(make_config())

        result = await call_http_tool("weather", config, {}, transport=httpx.MockTransport(handler))

        assert result == {"error": "API returned 503", "body": "down"}


class TestBuildHttpTools:
    """Tests for build_http_tools / register_http_tools."""

    def _record(self, services, user_id, name="weather", config=None, tool_type="api"):
        return services.catalog.create_tool(
            user_id, name, "Weather lookup", config or make_config(), tool_type=tool_type
        )

    def test_builds_configured_tool(self, services, user_id):
        tools = build_http_tools([self._record(services, user_id)], services.settings)

        assert len(tools) == 1
        assert tools[0].user_configured is True
        assert tools[0].parameters == ["city"]
        assert tools[0].schema == SCHEMA

    def test_skips_unusable_records(self, services, user_id):
        records = [
            self._record(services, user_id, name="research"),
            self._record(services, user_id, name="other", tool_type="code"),
            self._record(services, user_id, name="broken", config={"url": "https://x.test"}),
            self._record(services, user_id, name="internal",
                         config=make_config(url="http://10.0.0.1/x")),
        ]
        assert build_http_tools(records, services.settings) == []

    def test_own_origin_allowed(self, services, user_id):
        services.settings.set_preference("app_base_url", "http://localhost:3000")
        record = self._record(services, user_id, config=make_config(url="http://localhost:3000/api"))
        assert len(build_http_tools([record], services.settings)) == 1

    def test_builtin_name_wins(self, services, user_id):
        registry = ToolRegistry()
        registry.register_tool(ToolDefinition("weather", "builtin", lambda args: None))

        added = register_http_tools(registry, [self._record(services, user_id)], services.settings)

        assert added == []
        assert registry.tools["weather"].description == "builtin"

    @pytest.mark.asyncio
    async def test_registered_tool_invokes_transport(self, services, user_id):
        handler = Recorder(json_body={"temp": 5})
        registry = ToolRegistry()
        register_http_tools(
            registry, [self._record(services, user_id)], services.settings,
            transport=httpx.MockTransport(handler),
        )

        output = await registry.invoke_tool("weather", {"city": "Bergen"})

        assert output.success is True
        assert output.result == {"temp": 5}

    @pytest.mark.asyncio
    async def test_network_failure_is_tool_error(self, services, user_id):
        def fail(request):
            raise httpx.ConnectError("refused")

        registry = ToolRegistry()
        register_http_tools(
            registry, [self._record(services, user_id)], services.settings,
            transport=httpx.MockTransport(fail),
        )

        output = await registry.invoke_tool("weather", {"city": "Bergen"})

        assert output.success is False
        assert "refused" in output.error

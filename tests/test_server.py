from __future__ import annotations

import json
from typing import Any

import pytest
from conftest import FakeBrowser, FakeLauncher

from mcp_servers.tabgrid import main as main_module
from mcp_servers.tabgrid.context import BootstrapError
from mcp_servers.tabgrid.main import McpServer, _safe_arguments
from mcp_servers.tabgrid.server.contract import LATEST_PROTOCOL_VERSION, tools_list
from mcp_servers.tabgrid.server.registry import create_default_registry


@pytest.fixture
def outbox(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    sent: list[dict[str, Any]] = []
    monkeypatch.setattr(main_module, "_write_message", sent.append)
    return sent


def _call(server: McpServer, name: str, arguments: dict[str, Any] | None = None, request_id: int = 1) -> None:
    server.dispatch(
        {"jsonrpc": "2.0", "id": request_id, "method": "tools/call", "params": {"name": name, "arguments": arguments or {}}}
    )


def _text(message: dict[str, Any]) -> str:
    return message["result"]["content"][0]["text"]


def test_initialize_negotiates_protocol(make_ctx: Any, outbox: list[dict[str, Any]]) -> None:
    server = McpServer(make_ctx())
    server.dispatch({"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {"protocolVersion": "2024-11-05"}})
    server.dispatch({"jsonrpc": "2.0", "id": 2, "method": "initialize", "params": {"protocolVersion": "1999-01-01"}})

    assert outbox[0]["result"]["protocolVersion"] == "2024-11-05"
    assert outbox[1]["result"]["protocolVersion"] == LATEST_PROTOCOL_VERSION
    assert outbox[0]["result"]["capabilities"]["resources"]["listChanged"] is True
    assert outbox[0]["result"]["serverInfo"]["name"] == "tabgrid"


def test_tool_definitions_match_handlers() -> None:
    names = {tool["name"] for tool in tools_list()}
    assert names == set(create_default_registry().tool_names)
    assert {"create_session", "click_grid", "suppressed_dialogs", "screenshot"} <= names
    for tool in tools_list():
        assert tool["inputSchema"]["type"] == "object"


def test_notifications_are_silent_and_unknown_methods_fail(make_ctx: Any, outbox: list[dict[str, Any]]) -> None:
    server = McpServer(make_ctx())
    server.dispatch({"jsonrpc": "2.0", "method": "notifications/initialized"})
    server.dispatch({})
    assert outbox == []

    server.dispatch({"jsonrpc": "2.0", "id": 7, "method": "bogus/method"})
    assert outbox[0]["error"]["code"] == -32601

    server.dispatch({"jsonrpc": "2.0", "id": 8, "method": "ping"})
    assert outbox[1] == {"jsonrpc": "2.0", "id": 8, "result": {}}


def test_tools_list_does_not_start_browser(make_ctx: Any, outbox: list[dict[str, Any]]) -> None:
    ctx = make_ctx()
    server = McpServer(ctx)
    server.dispatch({"jsonrpc": "2.0", "id": 1, "method": "tools/list"})
    assert len(outbox[0]["result"]["tools"]) == len(tools_list())
    assert ctx.registry is None


def test_first_tool_call_bootstraps_tab_1(make_ctx: Any, outbox: list[dict[str, Any]]) -> None:
    server = McpServer(make_ctx())
    _call(server, "list_sessions")

    payload = json.loads(_text(outbox[0]))
    assert outbox[0]["result"]["isError"] is False
    assert payload["count"] == 1
    assert payload["activeSessionId"] == "tab_1"
    assert payload["sessions"][0]["isActive"] is True


def test_session_flow(make_ctx: Any, outbox: list[dict[str, Any]]) -> None:
    server = McpServer(make_ctx())
    _call(server, "create_session", {"url": "https://example.org", "active": True})
    _call(server, "switch_session", {"session_id": "tab_1"})
    _call(server, "close_session", {"session_id": "tab_1"})

    created = json.loads(_text(outbox[0]))
    assert created == {"sessionId": "tab_2", "active": True, "url": "https://example.org"}
    assert json.loads(_text(outbox[1])) == {"sessionId": "tab_1", "switched": True}
    close_reply = next(m for m in outbox if m.get("id") == 1 and "closed" in _text(m))
    assert json.loads(_text(close_reply))["activeSessionId"] == "tab_2"
    assert {"jsonrpc": "2.0", "method": "notifications/resources/list_changed"} in outbox


def test_unknown_session_is_an_error_result(make_ctx: Any, outbox: list[dict[str, Any]]) -> None:
    server = McpServer(make_ctx())
    _call(server, "switch_session", {"session_id": "tab_9"})

    reply = outbox[0]["result"]
    assert reply["isError"] is True
    text = reply["content"][0]["text"]
    assert text.startswith("Error: Tab tab_9 not found")
    assert "knownSessions" in text
    assert "list_sessions" in text


def test_unknown_tool_and_missing_argument(make_ctx: Any, outbox: list[dict[str, Any]]) -> None:
    server = McpServer(make_ctx())
    _call(server, "does_not_exist")
    _call(server, "navigate", {})

    assert outbox[0]["result"]["isError"] is True
    assert "Unknown tool: does_not_exist" in _text(outbox[0])
    assert "Missing required argument: url" in _text(outbox[1])


def test_grid_miss_is_an_error_result(make_ctx: Any, outbox: list[dict[str, Any]]) -> None:
    server = McpServer(make_ctx())
    _call(server, "click_grid", {"row": 999, "col": 999})
    _call(server, "element_at_grid", {"row": 0, "col": 1})

    assert outbox[0]["result"]["isError"] is True
    assert "(999, 999)" in _text(outbox[0])
    assert outbox[1]["result"]["isError"] is True


def test_bootstrap_failure_writes_result_then_raises(make_ctx: Any, outbox: list[dict[str, Any]]) -> None:
    server = McpServer(make_ctx(launcher=FakeLauncher(ready=False)))

    with pytest.raises(BootstrapError):
        _call(server, "list_sessions")

    assert outbox[0]["result"]["isError"] is True
    assert "Browser could not be started" in _text(outbox[0])


def test_resources_list_and_read(make_ctx: Any, outbox: list[dict[str, Any]]) -> None:
    ctx = make_ctx()
    server = McpServer(ctx)
    ctx.screenshots.put("home", "AAAA")

    server.dispatch({"jsonrpc": "2.0", "id": 1, "method": "resources/list"})
    server.dispatch({"jsonrpc": "2.0", "id": 2, "method": "resources/read", "params": {"uri": "screenshot://home"}})
    server.dispatch({"jsonrpc": "2.0", "id": 3, "method": "resources/read", "params": {"uri": "screenshot://gone"}})

    uris = [r["uri"] for r in outbox[0]["result"]["resources"]]
    assert uris == ["console://logs", "screenshot://home"]
    assert outbox[1]["result"]["contents"][0]["blob"] == "AAAA"
    assert outbox[2]["error"]["code"] == -32002
    assert outbox[2]["error"]["data"] == {"uri": "screenshot://gone"}


def test_console_messages_notify_clients(make_ctx: Any, outbox: list[dict[str, Any]]) -> None:
    browser = FakeBrowser()
    server = McpServer(make_ctx(browser))
    _call(server, "list_sessions")
    outbox.clear()

    browser.pages[0].emit("Runtime.consoleAPICalled", {"type": "log", "args": [{"type": "string", "value": "hi"}]})

    assert outbox == [
        {"jsonrpc": "2.0", "method": "notifications/resources/updated", "params": {"uri": "console://logs"}}
    ]


def test_safe_arguments_redacts_queries_and_values() -> None:
    safe = _safe_arguments(
        {"url": "https://example.com/login?token=secret#frag", "value": "hunter2", "script": "x", "selector": "#a"}
    )
    assert safe == {"url": "https://example.com/login", "value": "<7 chars>", "script": "<1 chars>", "selector": "#a"}

"""
MCP Server for multi-tab, grid-addressed browser automation.

This module provides the main entry point and protocol handling.
Tool dispatch is handled via registry pattern in server/registry.py.
"""

from __future__ import annotations

import json
import logging
import os
import signal
import sys
import threading
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from .context import AppContext, BootstrapError
from .http_client import HttpClientError
from .resources import ResourceNotFound, list_resources, read_resource
from .server.contract import (
    DEFAULT_PROTOCOL_VERSION,
    LATEST_PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    initialize_result,
    select_protocol,
    tools_list,
)
from .server.registry import create_default_registry
from .server.types import ToolResult
from .tools.base import SmartToolError

logging.basicConfig(
    level=os.environ.get("MCP_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger("mcp.tabgrid")

__all__ = [
    "SUPPORTED_PROTOCOL_VERSIONS",
    "LATEST_PROTOCOL_VERSION",
    "DEFAULT_PROTOCOL_VERSION",
    "McpServer",
    "main",
]

RESOURCE_NOT_FOUND = -32002

# Console notifications are written from event-bus threads.
_write_lock = threading.Lock()


def _write_message(payload: dict[str, Any]) -> None:
    """Write JSON-RPC message to stdout."""
    line = (json.dumps(payload, ensure_ascii=False) + "\n").encode()
    with _write_lock:
        sys.stdout.buffer.write(line)
        sys.stdout.buffer.flush()


def _read_message() -> dict[str, Any] | None:
    """Read JSON-RPC message from stdin. None means EOF."""
    line = sys.stdin.buffer.readline()
    if not line:
        return None
    line = line.strip()
    if not line:
        return {}
    try:
        msg = json.loads(line.decode())
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("dropping malformed frame: %s", exc)
        return {}
    if os.environ.get("MCP_TRACE"):
        logger.info("recv %s", msg)
    return msg if isinstance(msg, dict) else {}


def _strip_query(url: str) -> str:
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.query and not parts.fragment:
        return url
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def _safe_arguments(arguments: dict[str, Any]) -> dict[str, Any]:
    """Arguments for logging: URL query strings and typed values are not logged."""
    safe: dict[str, Any] = {}
    for key, value in arguments.items():
        if key == "url" and isinstance(value, str):
            safe[key] = _strip_query(value)
        elif key in {"value", "script"} and isinstance(value, str):
            safe[key] = f"<{len(value)} chars>"
        else:
            safe[key] = value
    return safe


class McpServer:
    """MCP Server with registry-based tool dispatch."""

    def __init__(self, ctx: AppContext | None = None) -> None:
        self.ctx = ctx or AppContext()
        self.ctx.notifier = self.notify
        self.registry = create_default_registry()

    def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        message: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params:
            message["params"] = params
        _write_message(message)

    def handle_initialize(self, request_id: Any, params: dict[str, Any] | None = None) -> None:
        """Handle initialize request."""
        requested = (params or {}).get("protocolVersion") if isinstance(params, dict) else None
        protocol = select_protocol(requested)
        _write_message({"jsonrpc": "2.0", "id": request_id, "result": initialize_result(protocol)})

    def handle_list_tools(self, request_id: Any) -> None:
        """Handle tools/list request."""
        _write_message({"jsonrpc": "2.0", "id": request_id, "result": {"tools": tools_list()}})

    def handle_list_resources(self, request_id: Any) -> None:
        resources = list_resources(self.ctx.console_logs, self.ctx.screenshots)
        _write_message({"jsonrpc": "2.0", "id": request_id, "result": {"resources": resources}})

    def handle_read_resource(self, request_id: Any, uri: str) -> None:
        try:
            contents = read_resource(uri, self.ctx.console_logs, self.ctx.screenshots)
        except ResourceNotFound as exc:
            _write_message(
                {
                    "jsonrpc": "2.0",
                    "id": request_id,
                    "error": {"code": RESOURCE_NOT_FOUND, "message": str(exc), "data": {"uri": uri}},
                }
            )
            return
        _write_message({"jsonrpc": "2.0", "id": request_id, "result": {"contents": contents}})

    def _log_call(self, name: str, arguments: dict[str, Any]) -> None:
        """Log tool call with sanitized arguments."""
        logger.info("tool=%s args=%s", name, _safe_arguments(arguments))

    def handle_call_tool(self, request_id: Any, name: str, arguments: dict[str, Any]) -> None:
        """Handle tool call via registry dispatch.

        Tool failures become `isError` results. Only BootstrapError escapes,
        after its error result has been written.
        """
        self._log_call(name, arguments)

        fatal: BootstrapError | None = None
        try:
            if not name:
                result = ToolResult.error("Missing tool name")
            elif not self.registry.has(name):
                result = ToolResult.error(f"Unknown tool: {name}", tool=name)
            else:
                result = self.registry.dispatch(name, self.ctx, arguments)
        except BootstrapError as e:
            fatal = e
            result = ToolResult.error(f"Browser could not be started: {e}", tool=name)
        except SmartToolError as e:
            logger.info("tool_error tool=%s action=%s reason=%s", e.tool, e.action, e.reason)
            result = ToolResult.error(e.reason, tool=e.tool, suggestion=e.suggestion, details=e.details)
        except HttpClientError as e:
            logger.info("http_error %s", str(e))
            result = ToolResult.error(str(e), tool=name)
        except KeyError as e:
            result = ToolResult.error(f"Missing required argument: {e.args[0]}", tool=name)
        except Exception as exc:
            logger.exception("tool_call_failed")
            result = ToolResult.error(str(exc), tool=name)

        _write_message(
            {
                "jsonrpc": "2.0",
                "id": request_id,
                "result": {"content": result.to_content_list(), "isError": result.is_error},
            }
        )
        if fatal is not None:
            raise fatal

    def dispatch(self, message: dict[str, Any]) -> None:
        """Dispatch incoming JSON-RPC message to appropriate handler."""
        if not message:
            return

        method = message.get("method")
        request_id = message.get("id")
        params = message.get("params") or {}

        if method == "initialize":
            self.handle_initialize(request_id, params)
        elif isinstance(method, str) and method.startswith("notifications/"):
            return
        elif method == "tools/list":
            self.handle_list_tools(request_id)
        elif method == "tools/call":
            name = params.get("name")
            arguments = params.get("arguments") or {}
            self.handle_call_tool(request_id, name or "", arguments)
        elif method == "resources/list":
            self.handle_list_resources(request_id)
        elif method == "resources/read":
            self.handle_read_resource(request_id, str(params.get("uri") or ""))
        elif method == "ping":
            _write_message({"jsonrpc": "2.0", "id": request_id, "result": {}})
        else:
            _write_message(
                {
                    "jsonrpc": "2.0",
                    "id": request_id,
                    "error": {"code": -32601, "message": f"Method {method} not found"},
                }
            )


def main() -> None:
    """Main entry point for MCP server."""
    server = McpServer()

    def _on_signal(signum: int, _frame: Any) -> None:
        logger.info("Received signal %s, shutting down.", signum)
        server.ctx.shutdown()
        sys.exit(0)

    signal.signal(signal.SIGTERM, _on_signal)
    signal.signal(signal.SIGINT, _on_signal)

    try:
        while True:
            message = _read_message()
            if message is None:
                break
            server.dispatch(message)
    except BootstrapError as exc:
        logger.error("Browser launch failed: %s", exc)
        server.ctx.shutdown()
        sys.exit(1)
    server.ctx.shutdown()


if __name__ == "__main__":
    main()

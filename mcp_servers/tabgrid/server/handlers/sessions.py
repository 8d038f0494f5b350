"""
Session tool handlers - tab lifecycle and the active-tab pointer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ... import tools
from ...sessions import CreateSessionOptions
from ..types import ToolResult

if TYPE_CHECKING:
    from ...context import AppContext


def handle_create_session(ctx: AppContext, args: dict[str, Any]) -> ToolResult:
    result = tools.create_session(ctx, CreateSessionOptions.from_arguments(args))
    return ToolResult.json(result)


def handle_switch_session(ctx: AppContext, args: dict[str, Any]) -> ToolResult:
    result = tools.switch_session(ctx, str(args.get("session_id") or ""))
    return ToolResult.json(result)


def handle_list_sessions(ctx: AppContext, args: dict[str, Any]) -> ToolResult:
    return ToolResult.json(tools.list_sessions(ctx))


def handle_close_session(ctx: AppContext, args: dict[str, Any]) -> ToolResult:
    result = tools.close_session(ctx, str(args.get("session_id") or ""))
    return ToolResult.json(result)


SESSION_HANDLERS: dict[str, tuple] = {
    "create_session": (handle_create_session, True),
    "switch_session": (handle_switch_session, True),
    "list_sessions": (handle_list_sessions, True),
    "close_session": (handle_close_session, True),
}

"""
Session (tab) management tools.

Provides:
- create_session: open a new tab, optionally navigate and activate it
- switch_session: make a tab the active one
- list_sessions: summaries of every registered tab
- close_session: close a tab and re-point the active session
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..http_client import HttpClientError
from ..sessions import CreateSessionOptions, SessionNotFound
from .base import SmartToolError

if TYPE_CHECKING:
    from ..context import AppContext


def _not_found(tool: str, action: str, exc: SessionNotFound, known: list[str]) -> SmartToolError:
    return SmartToolError(
        tool=tool,
        action=action,
        reason=str(exc),
        suggestion="Use list_sessions to see the available session ids",
        details={"sessionId": exc.session_id, "knownSessions": known},
    )


def create_session(ctx: AppContext, options: CreateSessionOptions) -> dict[str, Any]:
    """Open a new tab.

    A failed navigation does not fail creation: the tab stays registered at its
    pre-navigation location and the failure comes back as `navigationWarning`.
    """
    registry = ctx.ensure_registry()
    try:
        created = registry.create(options)
    except HttpClientError as e:
        raise SmartToolError(
            tool="create_session",
            action="create",
            reason=str(e),
            suggestion="Check that the browser is still running",
        ) from e

    result: dict[str, Any] = {"sessionId": created.session_id, "active": registry.active_id == created.session_id}
    if options.url:
        result["url"] = options.url
    if created.navigation_error:
        result["navigationWarning"] = created.navigation_error
    return result


def switch_session(ctx: AppContext, session_id: str) -> dict[str, Any]:
    registry = ctx.ensure_registry()
    try:
        registry.switch(session_id)
    except SessionNotFound as e:
        raise _not_found("switch_session", "switch", e, registry.session_ids()) from e
    return {"sessionId": session_id, "switched": True}


def list_sessions(ctx: AppContext) -> dict[str, Any]:
    registry = ctx.ensure_registry()
    sessions = [summary.to_dict() for summary in registry.list()]
    return {"sessions": sessions, "activeSessionId": registry.active_id, "count": len(sessions)}


def close_session(ctx: AppContext, session_id: str) -> dict[str, Any]:
    registry = ctx.ensure_registry()
    try:
        page = registry.get(session_id).page
        registry.close(session_id)
    except SessionNotFound as e:
        raise _not_found("close_session", "close", e, registry.session_ids()) from e
    ctx.forget(page)
    ctx.notify("notifications/resources/list_changed")
    return {"sessionId": session_id, "closed": True, "activeSessionId": registry.active_id}

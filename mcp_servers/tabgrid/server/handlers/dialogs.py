"""
Dialog tool handlers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ... import tools
from ..types import ToolResult

if TYPE_CHECKING:
    from ...context import AppContext


def handle_suppressed_dialogs(ctx: AppContext, args: dict[str, Any]) -> ToolResult:
    return ToolResult.json(tools.suppressed_dialogs(ctx))


DIALOG_HANDLERS: dict[str, tuple] = {
    "suppressed_dialogs": (handle_suppressed_dialogs, True),
}

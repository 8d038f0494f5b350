"""
Tool handlers organized by domain.

All handlers follow the signature: (ctx, arguments) -> ToolResult
"""

from .dialogs import DIALOG_HANDLERS
from .grid import GRID_HANDLERS
from .page import PAGE_HANDLERS
from .sessions import SESSION_HANDLERS

# Aggregate all handlers
ALL_HANDLERS: dict[str, tuple] = {
    **SESSION_HANDLERS,
    **GRID_HANDLERS,
    **DIALOG_HANDLERS,
    **PAGE_HANDLERS,
}

__all__ = [
    "ALL_HANDLERS",
    "SESSION_HANDLERS",
    "GRID_HANDLERS",
    "DIALOG_HANDLERS",
    "PAGE_HANDLERS",
]

"""
Tab and grid automation tools organized by domain.

Each module provides focused functionality:
- base: SmartToolError and the active-page context manager
- sessions: Tab creation, switching, listing and closing
- grid: Position-based element targeting
- dialogs: Suppressed dialog history
- page: One-shot page actions (navigate, screenshot, click, fill, ...)
"""

from .base import SmartToolError, page_action
from .dialogs import suppressed_dialogs
from .grid import click_grid, element_at_grid, grid_coord_for, toggle_grid
from .page import annotate_grid, click, evaluate, fill, hover, navigate, screenshot, select
from .sessions import close_session, create_session, list_sessions, switch_session

__all__ = [
    "SmartToolError",
    "page_action",
    "suppressed_dialogs",
    "click_grid",
    "element_at_grid",
    "grid_coord_for",
    "toggle_grid",
    "annotate_grid",
    "click",
    "evaluate",
    "fill",
    "hover",
    "navigate",
    "screenshot",
    "select",
    "close_session",
    "create_session",
    "list_sessions",
    "switch_session",
]

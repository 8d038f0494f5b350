"""
Grid tools: position-based element targeting on the active tab.

Misses (no cell, no element, unmatched selector) are results, not exceptions:
every function returns a payload whose sentinel field is None / False.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..context import AppContext


def click_grid(ctx: AppContext, row: Any, col: Any, visible: bool = False) -> dict[str, Any]:
    page = ctx.require_page()
    clicked = ctx.grid(page).click_at(row, col, visible=visible)
    return {"clicked": clicked, "row": row, "col": col}


def element_at_grid(ctx: AppContext, row: Any, col: Any) -> dict[str, Any]:
    page = ctx.require_page()
    element = ctx.grid(page).resolve_cell(row, col)
    return {"row": row, "col": col, "element": element.to_dict() if element is not None else None}


def grid_coord_for(ctx: AppContext, selector: str) -> dict[str, Any]:
    page = ctx.require_page()
    coord = ctx.grid(page).coord_for(selector)
    return {"selector": selector, "coord": coord.to_dict() if coord is not None else None}


def toggle_grid(ctx: AppContext, visible: bool = True, labeled: bool = True) -> dict[str, Any]:
    page = ctx.require_page()
    applied = ctx.grid(page).set_visibility(visible, labeled)
    return {"visible": visible, "labeled": bool(visible and labeled), "applied": applied}

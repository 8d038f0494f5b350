"""
Grid tool handlers - coordinate-addressed interaction.

A miss is reported as an error result (isError) carrying the payload, never raised.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ... import tools
from ..types import ToolResult

if TYPE_CHECKING:
    from ...context import AppContext


def handle_click_grid(ctx: AppContext, args: dict[str, Any]) -> ToolResult:
    result = tools.click_grid(ctx, args.get("row"), args.get("col"), visible=bool(args.get("visible", False)))
    if not result["clicked"]:
        return ToolResult.error(
            f"Failed to click or no element found at grid coordinates ({result['row']}, {result['col']})",
            tool="click_grid",
            suggestion="Use screenshot(grid=true) or element_at_grid to check the cell",
            details=result,
        )
    return ToolResult.json(result)


def handle_element_at_grid(ctx: AppContext, args: dict[str, Any]) -> ToolResult:
    result = tools.element_at_grid(ctx, args.get("row"), args.get("col"))
    if result["element"] is None:
        return ToolResult.error(
            f"No element found at grid coordinates ({result['row']}, {result['col']})",
            tool="element_at_grid",
            suggestion="Coordinates are 1-based and must lie inside the grid",
        )
    return ToolResult.json(result)


def handle_grid_coord_for(ctx: AppContext, args: dict[str, Any]) -> ToolResult:
    selector = str(args.get("selector") or "")
    result = tools.grid_coord_for(ctx, selector)
    if result["coord"] is None:
        return ToolResult.error(
            f"Could not find matching grid cell for selector '{selector}'",
            tool="grid_coord_for",
            suggestion="Check the selector matches an element on the active tab",
        )
    return ToolResult.json(result["coord"])


def handle_toggle_grid(ctx: AppContext, args: dict[str, Any]) -> ToolResult:
    result = tools.toggle_grid(ctx, visible=bool(args.get("visible", True)), labeled=bool(args.get("labeled", True)))
    return ToolResult.json(result)


GRID_HANDLERS: dict[str, tuple] = {
    "click_grid": (handle_click_grid, True),
    "element_at_grid": (handle_element_at_grid, True),
    "grid_coord_for": (handle_grid_coord_for, True),
    "toggle_grid": (handle_toggle_grid, True),
}

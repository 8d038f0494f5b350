"""
Page action handlers - navigation, screenshots, selector input, JS evaluation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ... import tools
from ...tools.page import DEFAULT_SCREENSHOT_HEIGHT, DEFAULT_SCREENSHOT_WIDTH
from ..types import ToolResult

if TYPE_CHECKING:
    from ...context import AppContext


def _int_arg(args: dict[str, Any], key: str, default: int) -> int:
    value = args.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        return default
    return int(value)


def handle_navigate(ctx: AppContext, args: dict[str, Any]) -> ToolResult:
    result = tools.navigate(ctx, str(args["url"]))
    return ToolResult.json({**result, "navigated": True})


def handle_screenshot(ctx: AppContext, args: dict[str, Any]) -> ToolResult:
    result = tools.screenshot(
        ctx,
        name=str(args["name"]),
        selector=args.get("selector") or None,
        full_page=bool(args.get("fullPage", False)),
        width=_int_arg(args, "width", DEFAULT_SCREENSHOT_WIDTH),
        height=_int_arg(args, "height", DEFAULT_SCREENSHOT_HEIGHT),
        grid=bool(args.get("grid", False)),
    )
    meta = {k: v for k, v in result.items() if k != "data"}
    return ToolResult.with_image(result["description"], result["data"], data=meta)


def handle_click(ctx: AppContext, args: dict[str, Any]) -> ToolResult:
    return ToolResult.json(tools.click(ctx, str(args["selector"])))


def handle_fill(ctx: AppContext, args: dict[str, Any]) -> ToolResult:
    return ToolResult.json(tools.fill(ctx, str(args["selector"]), str(args.get("value", ""))))


def handle_select(ctx: AppContext, args: dict[str, Any]) -> ToolResult:
    return ToolResult.json(tools.select(ctx, str(args["selector"]), str(args.get("value", ""))))


def handle_hover(ctx: AppContext, args: dict[str, Any]) -> ToolResult:
    return ToolResult.json(tools.hover(ctx, str(args["selector"])))


def handle_evaluate(ctx: AppContext, args: dict[str, Any]) -> ToolResult:
    return ToolResult.json(tools.evaluate(ctx, str(args["script"])))


PAGE_HANDLERS: dict[str, tuple] = {
    "navigate": (handle_navigate, True),
    "screenshot": (handle_screenshot, True),
    "click": (handle_click, True),
    "fill": (handle_fill, True),
    "select": (handle_select, True),
    "hover": (handle_hover, True),
    "evaluate": (handle_evaluate, True),
}

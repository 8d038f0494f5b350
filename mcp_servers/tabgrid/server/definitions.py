"""Tool schema definitions (tools/list)."""

from __future__ import annotations

from typing import Any

_SCHEMA = "http://json-schema.org/draft-07/schema#"

_ROW = {"type": "integer", "minimum": 1, "description": "Grid row coordinate (1-based)"}
_COL = {"type": "integer", "minimum": 1, "description": "Grid column coordinate (1-based)"}
_SESSION_ID = {"type": "string", "description": "Session id, e.g. 'tab_1' (see list_sessions)"}


def _object(properties: dict[str, Any], required: list[str] | None = None) -> dict[str, Any]:
    schema: dict[str, Any] = {
        "$schema": _SCHEMA,
        "type": "object",
        "properties": properties,
        "additionalProperties": False,
    }
    if required:
        schema["required"] = required
    return schema


SESSION_TOOLS: list[dict[str, Any]] = [
    {
        "name": "create_session",
        "description": """Open a new browser tab and optionally navigate it.
USAGE:
- Background tab: create_session(url="https://example.com")
- Switch to it immediately: create_session(url="https://example.com", active=true)

A failed navigation still creates the tab; the failure is reported as navigationWarning.""",
        "inputSchema": _object(
            {
                "url": {"type": "string", "description": "URL to open in the new tab (must include protocol)"},
                "active": {"type": "boolean", "default": False, "description": "Make the new tab active"},
                "title": {"type": "string", "description": "Label stored in the tab metadata"},
            }
        ),
    },
    {
        "name": "switch_session",
        "description": "Make another tab the active one (the target of page, grid and dialog tools).",
        "inputSchema": _object({"session_id": _SESSION_ID}, ["session_id"]),
    },
    {
        "name": "list_sessions",
        "description": "List all tabs with id, title, url, isActive, isAccessible and metadata.",
        "inputSchema": _object({}),
    },
    {
        "name": "close_session",
        "description": "Close a tab. Closing the active tab activates the first remaining one.",
        "inputSchema": _object({"session_id": _SESSION_ID}, ["session_id"]),
    },
]

GRID_TOOLS: list[dict[str, Any]] = [
    {
        "name": "click_grid",
        "description": """Click the element at the center of a grid cell in the active tab.
The viewport is split into a rows x columns grid (default 20x20), cells are 1-based.
Use screenshot(grid=true) or toggle_grid to see the cells.""",
        "inputSchema": _object(
            {
                "row": _ROW,
                "col": _COL,
                "visible": {"type": "boolean", "default": False, "description": "Briefly highlight the clicked cell"},
            },
            ["row", "col"],
        ),
    },
    {
        "name": "element_at_grid",
        "description": "Describe the topmost element at the center of a grid cell in the active tab.",
        "inputSchema": _object({"row": _ROW, "col": _COL}, ["row", "col"]),
    },
    {
        "name": "grid_coord_for",
        "description": "Grid cell nearest to the center of the element matched by a CSS selector.",
        "inputSchema": _object(
            {"selector": {"type": "string", "description": "CSS selector of the element"}},
            ["selector"],
        ),
    },
    {
        "name": "toggle_grid",
        "description": "Show or hide the grid overlay (presentation only; it never intercepts clicks).",
        "inputSchema": _object(
            {
                "visible": {"type": "boolean", "default": True, "description": "Show the grid"},
                "labeled": {"type": "boolean", "default": True, "description": "Label cells with 'row,col'"},
            }
        ),
    },
]

DIALOG_TOOLS: list[dict[str, Any]] = [
    {
        "name": "suppressed_dialogs",
        "description": "alert/confirm/prompt calls auto-answered on the active tab since its last navigation.",
        "inputSchema": _object({}),
    },
]

PAGE_TOOLS: list[dict[str, Any]] = [
    {
        "name": "navigate",
        "description": "Navigate the active tab to a URL and wait for the load event.",
        "inputSchema": _object(
            {"url": {"type": "string", "description": "URL to navigate to (must include protocol)"}},
            ["url"],
        ),
    },
    {
        "name": "screenshot",
        "description": """Take a screenshot of the active tab or of one element.
Stored as resource screenshot://<name>. grid=true draws the cell grid with 'row,col' labels.""",
        "inputSchema": _object(
            {
                "name": {"type": "string", "description": "Unique name for the screenshot resource"},
                "selector": {"type": "string", "description": "CSS selector of an element to capture"},
                "fullPage": {"type": "boolean", "default": False, "description": "Capture the full scrollable page"},
                "width": {"type": "integer", "default": 1280, "description": "Viewport width in pixels"},
                "height": {"type": "integer", "default": 720, "description": "Viewport height in pixels"},
                "grid": {"type": "boolean", "default": False, "description": "Annotate the grid (viewport shots)"},
            },
            ["name"],
        ),
    },
    {
        "name": "click",
        "description": "Click an element of the active tab by CSS selector.",
        "inputSchema": _object(
            {"selector": {"type": "string", "description": "CSS selector of the element to click"}},
            ["selector"],
        ),
    },
    {
        "name": "fill",
        "description": "Fill an input field of the active tab.",
        "inputSchema": _object(
            {
                "selector": {"type": "string", "description": "CSS selector of the input field"},
                "value": {"type": "string", "description": "Text to fill in"},
            },
            ["selector", "value"],
        ),
    },
    {
        "name": "select",
        "description": "Select an option of a <select> element by its value attribute.",
        "inputSchema": _object(
            {
                "selector": {"type": "string", "description": "CSS selector of the <select> element"},
                "value": {"type": "string", "description": "Value of the <option> to select"},
            },
            ["selector", "value"],
        ),
    },
    {
        "name": "hover",
        "description": "Move the mouse over an element of the active tab.",
        "inputSchema": _object(
            {"selector": {"type": "string", "description": "CSS selector of the element to hover"}},
            ["selector"],
        ),
    },
    {
        "name": "evaluate",
        "description": "Execute JavaScript in the active tab (a top-level 'return' is allowed).",
        "inputSchema": _object(
            {"script": {"type": "string", "description": "JavaScript code to execute"}},
            ["script"],
        ),
    },
]

TOOL_DEFINITIONS: list[dict[str, Any]] = [*SESSION_TOOLS, *GRID_TOOLS, *DIALOG_TOOLS, *PAGE_TOOLS]

__all__ = ["TOOL_DEFINITIONS", "SESSION_TOOLS", "GRID_TOOLS", "DIALOG_TOOLS", "PAGE_TOOLS"]

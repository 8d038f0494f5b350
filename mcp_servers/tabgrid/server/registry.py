"""
Tool registry with dispatch table for MCP server.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .types import HandlerFunc, ToolResult

if TYPE_CHECKING:
    from ..context import AppContext

logger = logging.getLogger("mcp.tabgrid.registry")


class ToolRegistry:
    """Registry for tool handlers with lazy browser bootstrap."""

    def __init__(self) -> None:
        # name -> (handler, requires_browser)
        self._handlers: dict[str, tuple[HandlerFunc, bool]] = {}

    def register(self, name: str, handler: HandlerFunc, requires_browser: bool = True) -> None:
        """Register a tool handler."""
        self._handlers[name] = (handler, requires_browser)

    def register_many(self, handlers: dict[str, tuple[HandlerFunc, bool]]) -> None:
        """Register multiple handlers at once."""
        self._handlers.update(handlers)

    def get(self, name: str) -> tuple[HandlerFunc, bool] | None:
        """Get handler and its browser requirement."""
        return self._handlers.get(name)

    def has(self, name: str) -> bool:
        """Check if handler exists."""
        return name in self._handlers

    def dispatch(self, name: str, ctx: AppContext, arguments: dict[str, Any]) -> ToolResult:
        """
        Dispatch tool call to appropriate handler.

        Args:
            name: Tool name
            ctx: Application context
            arguments: Tool arguments

        Returns:
            ToolResult from handler

        Raises:
            KeyError: If tool not found
            BootstrapError: If the browser cannot be started
        """
        handler_info = self._handlers.get(name)
        if handler_info is None:
            raise KeyError(f"Unknown tool: {name}")

        handler, requires_browser = handler_info
        if requires_browser:
            ctx.ensure_registry()
        return handler(ctx, arguments)

    @property
    def tool_names(self) -> list[str]:
        """List all registered tool names."""
        return list(self._handlers.keys())


def create_default_registry() -> ToolRegistry:
    """Create registry with all default handlers."""
    from .handlers import ALL_HANDLERS

    registry = ToolRegistry()
    registry.register_many(ALL_HANDLERS)
    logger.debug("Registered %d tools", len(registry.tool_names))
    return registry

"""
Base utilities for tab and grid tools.

Provides:
- SmartToolError: Structured errors for AI agents
- page_action: context manager resolving the active page and mapping page failures
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..http_client import HttpClientError

if TYPE_CHECKING:
    from ..context import AppContext
    from ..page import PageHandle


# Error Handling
@dataclass
class SmartToolError(Exception):
    """Structured error with context for AI agents."""

    tool: str
    action: str
    reason: str
    suggestion: str
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"[{self.tool}] {self.action} failed: {self.reason}. Suggestion: {self.suggestion}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": True,
            "tool": self.tool,
            "action": self.action,
            "reason": self.reason,
            "suggestion": self.suggestion,
            "details": self.details,
        }


@contextmanager
def page_action(ctx: AppContext, tool: str, action: str, suggestion: str) -> Generator[PageHandle, None, None]:
    """Yield the active page; page-level failures surface as SmartToolError.

    Usage:
        with page_action(ctx, "click", "click", "Check the selector") as page:
            page.click(x, y)
    """
    page = ctx.require_page()
    try:
        yield page
    except HttpClientError as e:
        raise SmartToolError(tool=tool, action=action, reason=str(e), suggestion=suggestion) from e

"""
Type definitions for MCP server responses and handlers.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..context import AppContext


def _dump(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2, default=str)


@dataclass(slots=True)
class ToolContent:
    """Single content item in tool response."""

    type: str  # "text" or "image"
    text: str | None = None
    data: str | None = None  # base64 for images
    mime_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to MCP content format."""
        if self.type == "image":
            return {"type": "image", "data": self.data, "mimeType": self.mime_type}
        return {"type": "text", "text": self.text}


@dataclass(slots=True)
class ToolResult:
    """Result of a tool execution."""

    content: list[ToolContent] = field(default_factory=list)
    is_error: bool = False
    # Raw payload for tests and internal callers; not part of the MCP wire format.
    data: Any | None = None

    @classmethod
    def error(
        cls,
        message: str,
        *,
        tool: str | None = None,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> ToolResult:
        """Create error result: message first, then hints."""
        payload: dict[str, Any] = {"ok": False, "error": message}
        lines = [f"Error: {message}"]
        if tool:
            payload["tool"] = tool
        if suggestion:
            payload["suggestion"] = suggestion
            lines.append(f"Suggestion: {suggestion}")
        if details:
            payload["details"] = details
            lines.append(f"Details: {_dump(details)}")
        return cls(content=[ToolContent(type="text", text="\n".join(lines))], is_error=True, data=payload)

    @classmethod
    def json(cls, data: Any) -> ToolResult:
        """Create result with pretty-printed JSON text content."""
        return cls(content=[ToolContent(type="text", text=_dump(data))], data=data)

    @classmethod
    def with_image(cls, text: str, data_b64: str, mime_type: str = "image/png", data: Any | None = None) -> ToolResult:
        """Create result with text and image content. Omits image if data is empty."""
        content = [ToolContent(type="text", text=text or "")]
        if data_b64:
            content.append(ToolContent(type="image", data=data_b64, mime_type=mime_type))
        return cls(content=content, data=data)

    def to_content_list(self) -> list[dict[str, Any]]:
        """Convert to MCP content list format."""
        return [c.to_dict() for c in self.content]


HandlerFunc = Callable[["AppContext", dict[str, Any]], ToolResult]

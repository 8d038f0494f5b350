"""
Dialog tools.

Provides:
- suppressed_dialogs: dialogs auto-answered on the active tab's current document
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..dialogs import get_suppressed_dialogs

if TYPE_CHECKING:
    from ..context import AppContext


def suppressed_dialogs(ctx: AppContext) -> dict[str, Any]:
    page = ctx.require_page()
    dialogs = [record.to_dict() for record in get_suppressed_dialogs(page)]
    return {"dialogs": dialogs, "count": len(dialogs)}

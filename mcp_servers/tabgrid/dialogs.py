"""
Dialog interception: native JS dialogs never block automation.

Two cooperating layers, installed as a pair on every enhanced page:
- host listener on Page.javascriptDialogOpening, answered from a worker thread
- in-page override of alert/confirm/prompt, registered before page scripts run,
  which records every call into window._suppressedDialogs

Both layers share one policy: always proceed, never wait for a human.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from .http_client import HttpClientError

if TYPE_CHECKING:
    from .page import PageHandle

logger = logging.getLogger("mcp.tabgrid.dialogs")

AUTOMATED_RESPONSE = "Automated response"

DIALOG_EVENT = "Page.javascriptDialogOpening"

# Errors raised when the dialog (or the tab) is already gone by the time we answer.
_EXPECTED_ERROR_MARKERS = ("target closed", "no dialog is showing", "no target with given id", "is closed")


class DialogKind(str, Enum):
    ALERT = "alert"
    CONFIRM = "confirm"
    PROMPT = "prompt"
    BEFOREUNLOAD = "beforeunload"

    @classmethod
    def parse(cls, raw: Any) -> DialogKind:
        try:
            return cls(str(raw or "").strip().lower())
        except ValueError:
            return cls.ALERT


@dataclass(frozen=True)
class SuppressedDialog:
    """One dialog call recorded by the in-page override."""

    kind: DialogKind
    message: str
    timestamp: str
    default_value: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> SuppressedDialog:
        kind = DialogKind.parse(raw.get("type"))
        default = raw.get("defaultValue")
        return cls(
            kind=kind,
            message=str(raw.get("message") or ""),
            timestamp=str(raw.get("timestamp") or ""),
            default_value=str(default) if kind is DialogKind.PROMPT and default is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"kind": self.kind.value, "message": self.message, "timestamp": self.timestamp}
        if self.default_value is not None:
            out["defaultValue"] = self.default_value
        return out


DIALOG_OVERRIDE_SCRIPT = r"""
(() => {
  if (window.__tabgridDialogsInstalled) return;
  window.__tabgridDialogsInstalled = true;
  if (!Array.isArray(window._suppressedDialogs)) window._suppressedDialogs = [];

  const record = (type, message, extra) => {
    const entry = Object.assign({ type, message, timestamp: new Date().toISOString() }, extra || {});
    window._suppressedDialogs.push(entry);
    return entry;
  };

  window.alert = function (message) {
    const msg = message === undefined || message === null ? '' : String(message);
    console.log('[Alert Suppressed]:', msg);
    record('alert', msg);
  };

  window.confirm = function (message) {
    const msg = message === undefined || message === null ? '' : String(message);
    console.log('[Confirm Suppressed]:', msg);
    record('confirm', msg);
    return true;
  };

  window.prompt = function (message, defaultValue) {
    const msg = message === undefined || message === null ? '' : String(message);
    const hasDefault = defaultValue !== undefined && defaultValue !== null;
    console.log('[Prompt Suppressed]:', msg);
    record('prompt', msg, hasDefault ? { defaultValue: String(defaultValue) } : null);
    return hasDefault ? String(defaultValue) : __AUTOMATED_RESPONSE__;
  };
})();
""".replace("__AUTOMATED_RESPONSE__", '"' + AUTOMATED_RESPONSE + '"')

_READ_DIALOGS_EXPR = "Array.isArray(window._suppressedDialogs) ? window._suppressedDialogs : []"


def resolve_native_dialog(kind: DialogKind | str) -> tuple[bool, str | None]:
    """Answer for a native dialog: (accept, prompt_text)."""
    kind = DialogKind.parse(kind.value if isinstance(kind, DialogKind) else kind)
    if kind is DialogKind.PROMPT:
        return True, AUTOMATED_RESPONSE
    if kind is DialogKind.CONFIRM:
        return True, None
    return False, None


def _is_expected_error(exc: Exception) -> bool:
    text = str(exc).lower()
    return any(marker in text for marker in _EXPECTED_ERROR_MARKERS)


def _spawn_thread(fn: Callable[[], None], name: str) -> None:
    threading.Thread(target=fn, name=name, daemon=True).start()


class DialogInterceptor:
    """Installs dialog handling on pages.

    `spawn` runs the resolver off the event-bus thread; tests pass a synchronous one.
    """

    def __init__(self, spawn: Callable[[Callable[[], None], str], None] | None = None) -> None:
        self._spawn = spawn or _spawn_thread

    def _resolve(self, page: PageHandle, kind: DialogKind) -> None:
        accept, prompt_text = resolve_native_dialog(kind)
        try:
            page.handle_dialog(accept, prompt_text)
        except HttpClientError as exc:
            if _is_expected_error(exc):
                logger.debug("dialog already gone on %s: %s", page.target_id, exc)
                return
            logger.exception("Error handling dialog")

    def _listener(self, page: PageHandle) -> Callable[[dict[str, Any]], None]:
        def on_dialog(params: dict[str, Any]) -> None:
            kind = DialogKind.parse(params.get("type"))
            logger.info("[Alert Suppressed] Type: %s, Message: %s", kind.value, params.get("message", ""))
            self._spawn(lambda: self._resolve(page, kind), f"tabgrid-dialog-{page.target_id[:6]}")

        return on_dialog

    def install(self, page: PageHandle) -> bool:
        """Attach the host listener and the in-page override. Never raises."""
        if page.is_closed():
            logger.warning("Attempted to install dialog handling on a closed page.")
            return False
        try:
            page.on(DIALOG_EVENT, self._listener(page))
            page.add_script_on_new_document(DIALOG_OVERRIDE_SCRIPT)
            page.evaluate(DIALOG_OVERRIDE_SCRIPT)
        except HttpClientError as exc:
            logger.error("Failed to install dialog handling (page might have closed): %s", exc)
            return False
        return True


def get_suppressed_dialogs(page: PageHandle) -> list[SuppressedDialog]:
    """Dialogs recorded on the current document, oldest first."""
    if page.is_closed():
        return []
    try:
        raw = page.evaluate(_READ_DIALOGS_EXPR)
    except HttpClientError as exc:
        logger.error("Error getting suppressed dialogs: %s", exc)
        return []
    if not isinstance(raw, list):
        return []
    return [SuppressedDialog.from_dict(item) for item in raw if isinstance(item, dict)]

"""
Page handles over CDP.

- PageHandle: one browser tab (page target); owns a command connection and,
  once somebody subscribes to events, a background PageEventBus
- Browser: browser-level target factory (create, attach, close targets)

A PageHandle is invalidated for good once the target goes away (explicit close,
crash, or the user closing the tab). After that every command raises
PageClosedError and `is_closed()` stays True.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from contextlib import suppress
from typing import TYPE_CHECKING, Any

from .cdp import CdpConnection, EventCallback, PageEventBus
from .http_client import HttpClientError

if TYPE_CHECKING:
    from .launcher import BrowserLauncher

logger = logging.getLogger("mcp.tabgrid.page")


class PageClosedError(HttpClientError):
    """Command issued against a page whose target no longer exists."""


def _remote_value(result: dict[str, Any]) -> Any:
    value = result.get("result")
    if not isinstance(value, dict):
        return None
    if value.get("type") == "undefined" or value.get("subtype") == "null":
        return None
    return value.get("value")


def _exception_text(details: dict[str, Any]) -> str:
    exc = details.get("exception")
    if isinstance(exc, dict) and exc.get("description"):
        return str(exc["description"]).splitlines()[0]
    return str(details.get("text") or "Script execution failed")


class PageHandle:
    """One page target, addressed by its CDP target id."""

    def __init__(
        self,
        target_id: str,
        ws_url: str,
        *,
        browser: Browser | None = None,
        timeout: float = 5.0,
    ) -> None:
        self.target_id = target_id
        self.ws_url = ws_url
        self.timeout = timeout
        self._browser = browser
        self._conn: CdpConnection | None = None
        self._page_enabled = False
        self._bus: PageEventBus | None = None
        self._closed = False
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<PageHandle {self.target_id[:8]} {state}>"

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def is_closed(self) -> bool:
        return self._closed

    def mark_closed(self, reason: str = "closed") -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        logger.info("Page %s is gone (%s)", self.target_id, reason)
        self._teardown()

    def _teardown(self) -> None:
        bus, self._bus = self._bus, None
        if bus is not None:
            bus.stop()
        conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()

    def dispose(self) -> None:
        """Release connections without closing the target (process shutdown)."""
        self._teardown()

    def close(self) -> None:
        if self._closed:
            return
        try:
            if self._browser is not None:
                self._browser.close_target(self.target_id)
            else:
                self._send("Page.close")
        finally:
            self.mark_closed("closed by request")

    def _target_alive(self) -> bool:
        if self._browser is None:
            return True
        return self._browser.target_exists(self.target_id)

    # ─────────────────────────────────────────────────────────────────────────
    # Raw CDP
    # ─────────────────────────────────────────────────────────────────────────

    def _connection(self) -> CdpConnection:
        if self._conn is None:
            self._conn = CdpConnection(self.ws_url, timeout=self.timeout)
            self._page_enabled = False
        return self._conn

    def _send(self, method: str, params: dict[str, Any] | None = None, *, timeout: float | None = None) -> dict[str, Any]:
        if self._closed:
            raise PageClosedError(f"Page {self.target_id} is closed")
        try:
            return self._connection().send(method, params, timeout=timeout)
        except PageClosedError:
            raise
        except HttpClientError as exc:
            if not self._target_alive():
                self.mark_closed("target disappeared")
                raise PageClosedError(f"Page {self.target_id} is closed") from exc
            if "timed out" not in str(exc).lower():
                # Socket-level failure: reconnect on the next command.
                conn, self._conn = self._conn, None
                if conn is not None:
                    conn.close()
            raise

    def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send raw CDP command on the page's command connection."""
        return self._send(method, params)

    def _enable_page(self) -> None:
        if not self._page_enabled:
            self._send("Page.enable")
            self._page_enabled = True

    # ─────────────────────────────────────────────────────────────────────────
    # Events
    # ─────────────────────────────────────────────────────────────────────────

    def on(self, event: str, callback: EventCallback) -> None:
        """Subscribe to a CDP event delivered on the background event bus."""
        if self._closed:
            raise PageClosedError(f"Page {self.target_id} is closed")
        if self._bus is None:
            self._bus = PageEventBus(
                ws_url=self.ws_url,
                name=f"tabgrid-events-{self.target_id[:6]}",
                on_disconnect=self.mark_closed,
                target_alive=self._target_alive,
                connect_timeout=self.timeout,
            )
        self._bus.subscribe(event, callback)
        self._bus.start(wait=self.timeout)

    # ─────────────────────────────────────────────────────────────────────────
    # Navigation & info
    # ─────────────────────────────────────────────────────────────────────────

    def navigate(self, url: str, timeout: float = 60.0) -> None:
        """Navigate and wait for the load event; a timeout is a hard failure."""
        self._enable_page()
        conn = self._connection()
        # Load events queued so far belong to earlier documents.
        conn.discard_events("Page.loadEventFired")
        result = self._send("Page.navigate", {"url": url}, timeout=timeout)
        # Load events read before the navigate reply belong to earlier documents too.
        conn.discard_events("Page.loadEventFired")
        if result.get("errorText"):
            raise HttpClientError(f"Navigation to {url} failed: {result['errorText']}")
        if not result.get("loaderId"):
            # Same-document navigation (hash change): no load event follows.
            return
        if conn.wait_for_event("Page.loadEventFired", timeout=timeout) is None:
            raise HttpClientError(f"Navigation timeout of {int(timeout * 1000)} ms exceeded")

    def evaluate(self, expression: str, *, timeout: float | None = None) -> Any:
        """Evaluate JavaScript and return the JSON-serializable result."""
        result = self._send(
            "Runtime.evaluate",
            {"expression": expression, "returnByValue": True, "awaitPromise": True},
            timeout=timeout,
        )
        details = result.get("exceptionDetails")
        if isinstance(details, dict):
            raise HttpClientError(_exception_text(details))
        return _remote_value(result)

    def call(self, function_source: str, *args: Any, timeout: float | None = None) -> Any:
        """Invoke a JS function expression with plain-data arguments."""
        encoded = ", ".join(json.dumps(arg) for arg in args)
        return self.evaluate(f"({function_source})({encoded})", timeout=timeout)

    def url(self) -> str:
        return str(self.evaluate("window.location.href") or "")

    def title(self) -> str:
        return str(self.evaluate("document.title") or "")

    def add_script_on_new_document(self, source: str) -> str | None:
        self._enable_page()
        res = self._send("Page.addScriptToEvaluateOnNewDocument", {"source": source})
        identifier = res.get("identifier")
        return identifier if isinstance(identifier, str) and identifier else None

    def bring_to_front(self) -> None:
        self._send("Page.bringToFront")

    def handle_dialog(self, accept: bool, prompt_text: str | None = None) -> None:
        """Resolve an open JS dialog.

        Runs on a dedicated connection: the command connection may be blocked
        waiting on a script that opened the dialog.
        """
        if self._closed:
            raise PageClosedError(f"Page {self.target_id} is closed")
        params: dict[str, Any] = {"accept": accept}
        if prompt_text is not None:
            params["promptText"] = prompt_text
        conn = CdpConnection(self.ws_url, timeout=min(self.timeout, 2.0))
        try:
            with suppress(HttpClientError):
                conn.send("Page.enable")
            conn.send("Page.handleJavaScriptDialog", params)
        finally:
            conn.close()

    # ─────────────────────────────────────────────────────────────────────────
    # DOM helpers
    # ─────────────────────────────────────────────────────────────────────────

    def element_rect(self, selector: str) -> dict[str, float] | None:
        return self.call(
            """(sel) => {
              const el = document.querySelector(sel);
              if (!el) return null;
              el.scrollIntoView({block: 'center', inline: 'center'});
              const r = el.getBoundingClientRect();
              return {x: r.left, y: r.top, width: r.width, height: r.height};
            }""",
            selector,
        )

    def wait_for_selector(self, selector: str, *, visible: bool = True, timeout: float = 10.0) -> None:
        matcher = """(sel, visible) => {
          const el = document.querySelector(sel);
          if (!el) return false;
          if (!visible) return true;
          const st = window.getComputedStyle(el);
          const r = el.getBoundingClientRect();
          return st.visibility !== 'hidden' && st.display !== 'none' && r.width > 0 && r.height > 0;
        }"""
        deadline = time.time() + timeout
        while True:
            if self.call(matcher, selector, visible) is True:
                return
            if time.time() >= deadline:
                raise HttpClientError(f"Waiting for selector `{selector}` failed: {int(timeout * 1000)} ms exceeded")
            time.sleep(0.1)

    # ─────────────────────────────────────────────────────────────────────────
    # Input
    # ─────────────────────────────────────────────────────────────────────────

    def _mouse_event(self, event_type: str, x: float, y: float, button: str = "left", click_count: int = 1) -> None:
        self._send(
            "Input.dispatchMouseEvent",
            {"type": event_type, "x": x, "y": y, "button": button, "clickCount": click_count},
        )

    def move_mouse(self, x: float, y: float) -> None:
        self._mouse_event("mouseMoved", x, y, "none", 0)

    def click(self, x: float, y: float) -> None:
        self.move_mouse(x, y)
        self._mouse_event("mousePressed", x, y)
        self._mouse_event("mouseReleased", x, y)

    def insert_text(self, text: str) -> None:
        self._send("Input.insertText", {"text": text})

    # ─────────────────────────────────────────────────────────────────────────
    # Viewport & screenshots
    # ─────────────────────────────────────────────────────────────────────────

    def set_viewport(self, width: int, height: int) -> None:
        self._send(
            "Emulation.setDeviceMetricsOverride",
            {"width": int(width), "height": int(height), "deviceScaleFactor": 1, "mobile": False},
        )

    def screenshot(self, *, full_page: bool = False, clip: dict[str, float] | None = None) -> str:
        """Capture a PNG, return base64 data."""
        params: dict[str, Any] = {"format": "png", "fromSurface": True}
        if clip is None and full_page:
            metrics = self._send("Page.getLayoutMetrics")
            size = metrics.get("cssContentSize") or metrics.get("contentSize") or {}
            clip = {"x": 0, "y": 0, "width": size.get("width", 0), "height": size.get("height", 0)}
            params["captureBeyondViewport"] = True
        if clip:
            params["clip"] = {**clip, "scale": 1}
        result = self._send("Page.captureScreenshot", params)
        return str(result.get("data") or "")


class Browser:
    """Browser-level CDP access: target discovery, creation and closing."""

    def __init__(self, launcher: BrowserLauncher, *, timeout: float = 5.0) -> None:
        self.launcher = launcher
        self.timeout = timeout

    def _browser_call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        conn = CdpConnection(self.launcher.browser_ws_url(), timeout=self.timeout)
        try:
            return conn.send(method, params)
        finally:
            conn.close()

    def is_connected(self) -> bool:
        return self.launcher.cdp_ready(timeout=self.timeout)

    def list_targets(self) -> list[dict[str, Any]]:
        return [t for t in self.launcher.list_targets() if t.get("type") == "page"]

    def target_exists(self, target_id: str) -> bool:
        return any(t.get("id") == target_id for t in self.list_targets())

    def _ws_url_for(self, target_id: str, wait: float = 2.0) -> str:
        deadline = time.time() + wait
        while True:
            for target in self.list_targets():
                if target.get("id") == target_id and target.get("webSocketDebuggerUrl"):
                    return str(target["webSocketDebuggerUrl"])
            if time.time() >= deadline:
                break
            time.sleep(0.05)
        return f"ws://127.0.0.1:{self.launcher.config.cdp_port}/devtools/page/{target_id}"

    def attach(self, target: dict[str, Any]) -> PageHandle:
        target_id = str(target.get("id") or "")
        if not target_id:
            raise HttpClientError("Target has no id")
        ws_url = str(target.get("webSocketDebuggerUrl") or "") or self._ws_url_for(target_id)
        return PageHandle(target_id, ws_url, browser=self, timeout=self.timeout)

    def new_page(self, url: str = "about:blank") -> PageHandle:
        result = self._browser_call("Target.createTarget", {"url": url})
        target_id = result.get("targetId")
        if not target_id:
            raise HttpClientError("Failed to create browser tab")
        return PageHandle(str(target_id), self._ws_url_for(str(target_id)), browser=self, timeout=self.timeout)

    def close_target(self, target_id: str) -> None:
        self._browser_call("Target.closeTarget", {"targetId": target_id})

    def close(self) -> None:
        """Close the browser process (only when this process launched it)."""
        if self.launcher.process is None:
            return
        with suppress(HttpClientError):
            self._browser_call("Browser.close")
        self.launcher.shutdown()

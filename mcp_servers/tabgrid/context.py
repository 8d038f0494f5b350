"""
Application context: the browser, the session registry and the resource stores
of one server process, with explicit start / reset / shutdown.

Nothing here is module-global, so tests can run several contexts side by side.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import suppress
from typing import Any

from .config import BrowserConfig
from .dialogs import DialogInterceptor
from .grid import GridEngine
from .http_client import HttpClientError
from .launcher import BrowserLauncher
from .page import Browser, PageHandle
from .resources import CONSOLE_URI, ConsoleLogStore, ScreenshotStore, console_entry_from_event
from .sessions import SessionRegistry
from .tools.base import SmartToolError

logger = logging.getLogger("mcp.tabgrid.context")

Notifier = Callable[[str, "dict[str, Any] | None"], None]
BrowserFactory = Callable[[BrowserLauncher], Browser]

BLANK_URLS = {"", "about:blank"}
# Consecutive unanswered health checks before the browser counts as gone.
DISCONNECT_CHECKS = 3


class BootstrapError(Exception):
    """The browser could not be launched or attached; nothing can run without it."""


class AppContext:
    def __init__(
        self,
        config: BrowserConfig | None = None,
        *,
        launcher: BrowserLauncher | None = None,
        browser_factory: BrowserFactory | None = None,
        dialogs: DialogInterceptor | None = None,
    ) -> None:
        self.config = config or BrowserConfig.from_env()
        self.launcher = launcher or BrowserLauncher(self.config)
        self.browser: Browser | None = None
        self.registry: SessionRegistry | None = None
        self.console_logs = ConsoleLogStore(self.config.console_max_entries)
        self.screenshots = ScreenshotStore()
        self.dialogs = dialogs or DialogInterceptor()
        self.notifier: Notifier | None = None
        self._browser_factory = browser_factory or (lambda launcher: Browser(launcher, timeout=self.config.cdp_timeout))
        self._grids: dict[str, GridEngine] = {}
        self._failed_checks = 0
        self._closed = False

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def start(self) -> SessionRegistry:
        """Launch or attach the browser and register its first tab as tab_1."""
        if self.registry is not None:
            return self.registry

        logger.info("Launching browser...")
        result = self.launcher.ensure_running()
        if not result.ready:
            raise BootstrapError(result.message)

        browser = self._browser_factory(self.launcher)
        try:
            targets = browser.list_targets()
            if targets:
                logger.info("Using existing initial page.")
                first = browser.attach(targets[0])
                first_url = str(targets[0].get("url") or "")
            else:
                logger.info("No initial page found, creating one.")
                first = browser.new_page()
                first_url = "about:blank"
        except HttpClientError as exc:
            raise BootstrapError(f"Could not open the first tab: {exc}") from exc

        registry = SessionRegistry(browser, enhancer=self.enhance, navigation_timeout=self.config.navigation_timeout)
        self.browser, self.registry = browser, registry
        self._closed = False
        registry.bootstrap_first(first)

        if first_url in BLANK_URLS and self.config.initial_url:
            logger.info("Initial page is about:blank, navigating to %s", self.config.initial_url)
            try:
                first.navigate(self.config.initial_url, timeout=self.config.navigation_timeout)
            except HttpClientError as exc:
                logger.error("Failed to navigate initial page from about:blank: %s", exc)
        return registry

    def reset(self) -> None:
        """Forget the browser (after a disconnect); the next call bootstraps again."""
        registry, self.registry = self.registry, None
        self.browser = None
        self._failed_checks = 0
        if registry is not None:
            for session in registry:
                session.page.dispose()
        self._grids.clear()
        self.screenshots.clear()
        self.console_logs.clear()

    def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        browser = self.browser
        self.reset()
        if browser is not None:
            try:
                browser.close()
            except HttpClientError as exc:
                logger.error("Error closing browser: %s", exc)
        self.launcher.shutdown()
        logger.info("Shutdown complete.")

    # ─────────────────────────────────────────────────────────────────────────
    # Page enhancement
    # ─────────────────────────────────────────────────────────────────────────

    def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier(method, params)
        except (OSError, ValueError) as exc:
            logger.debug("notification %s dropped: %s", method, exc)

    def _console_listener(self, session_id: str) -> Callable[[dict[str, Any]], None]:
        def on_console(params: dict[str, Any]) -> None:
            self.console_logs.append(console_entry_from_event(params, session_id))
            self.notify("notifications/resources/updated", {"uri": CONSOLE_URI})

        return on_console

    def enhance(self, page: PageHandle, session_id: str) -> None:
        """Dialog handling, grid overlay and console capture, installed together."""
        self.dialogs.install(page)
        self.grid(page).enhance()
        try:
            page.on("Runtime.consoleAPICalled", self._console_listener(session_id))
        except HttpClientError as exc:
            logger.error("Console capture not installed for %s: %s", session_id, exc)

    def grid(self, page: PageHandle) -> GridEngine:
        engine = self._grids.get(page.target_id)
        if engine is None or engine.page is not page:
            engine = GridEngine(
                page,
                rows=self.config.grid_rows,
                columns=self.config.grid_columns,
                highlight_ms=self.config.grid_highlight_ms,
            )
            self._grids[page.target_id] = engine
        return engine

    def forget(self, page: PageHandle) -> None:
        self._grids.pop(page.target_id, None)

    # ─────────────────────────────────────────────────────────────────────────
    # Resolution
    # ─────────────────────────────────────────────────────────────────────────

    def _browser_lost(self) -> bool:
        """True only for a definite disconnect.

        The launched process has exited, or the CDP endpoint failed to answer
        DISCONNECT_CHECKS times in a row. A single slow check keeps every tab.
        """
        if self.launcher.reap():
            logger.error("Browser process exited")
            return True
        connected = False
        with suppress(HttpClientError):
            connected = self.browser is not None and self.browser.is_connected()
        if connected:
            self._failed_checks = 0
            return False
        self._failed_checks += 1
        logger.warning("Browser did not answer (%d/%d)", self._failed_checks, DISCONNECT_CHECKS)
        return self._failed_checks >= DISCONNECT_CHECKS

    def ensure_registry(self) -> SessionRegistry:
        if self.registry is not None and self._browser_lost():
            logger.error("Browser disconnected unexpectedly!")
            self.reset()
        return self.start()

    def ensure_page(self) -> PageHandle | None:
        """Active page after init-on-first-use and active-session recovery."""
        return self.ensure_registry().recover_active()

    def require_page(self) -> PageHandle:
        page = self.ensure_page()
        if page is None:
            raise SmartToolError(
                tool="session",
                action="resolve",
                reason="No active browser tab available",
                suggestion="Create or switch to a tab first (create_session, or check list_sessions)",
            )
        return page

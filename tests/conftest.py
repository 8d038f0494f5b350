from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from mcp_servers.tabgrid.config import BrowserConfig
from mcp_servers.tabgrid.context import AppContext
from mcp_servers.tabgrid.http_client import HttpClientError
from mcp_servers.tabgrid.launcher import LaunchResult
from mcp_servers.tabgrid.page import PageClosedError


class FakePage:
    """In-memory stand-in for PageHandle."""

    def __init__(self, target_id: str, url: str = "about:blank", title: str = "") -> None:
        self.target_id = target_id
        self.current_url = url
        self.current_title = title
        self.closed = False
        self.evaluate_handler: Callable[[str], Any] = lambda _expr: None
        self.evaluated: list[str] = []
        self.scripts: list[str] = []
        self.subscriptions: dict[str, list[Callable[[dict[str, Any]], None]]] = {}
        self.navigations: list[str] = []
        self.dialog_answers: list[tuple[bool, str | None]] = []
        self.front_calls = 0
        self.disposed = False
        self.fail_navigate: str | None = None
        self.fail_title = False
        self.fail_front = False
        self.fail_close = False
        self.dialog_error: Exception | None = None
        # Selector-driven input
        self.rects: dict[str, dict[str, float]] = {}
        self.call_handler: Callable[..., Any] = lambda _fn, *_args: True
        self.inputs: list[tuple[Any, ...]] = []
        self.screenshot_data = ""
        self.screenshots: list[dict[str, Any]] = []
        self.viewport: tuple[int, int] | None = None

    def is_closed(self) -> bool:
        return self.closed

    def mark_closed(self, reason: str = "closed") -> None:  # noqa: ARG002
        self.closed = True

    def _check(self) -> None:
        if self.closed:
            raise PageClosedError(f"Page {self.target_id} is closed")

    def url(self) -> str:
        self._check()
        if self.fail_title:
            raise HttpClientError("CDP response timed out")
        return self.current_url

    def title(self) -> str:
        self._check()
        if self.fail_title:
            raise HttpClientError("CDP response timed out")
        return self.current_title

    def navigate(self, url: str, timeout: float = 60.0) -> None:  # noqa: ARG002
        self._check()
        self.navigations.append(url)
        if self.fail_navigate:
            raise HttpClientError(self.fail_navigate)
        self.current_url = url

    def evaluate(self, expression: str, *, timeout: float | None = None) -> Any:  # noqa: ARG002
        self._check()
        self.evaluated.append(expression)
        return self.evaluate_handler(expression)

    def add_script_on_new_document(self, source: str) -> str:
        self._check()
        self.scripts.append(source)
        return str(len(self.scripts))

    def on(self, event: str, callback: Callable[[dict[str, Any]], None]) -> None:
        self._check()
        self.subscriptions.setdefault(event, []).append(callback)

    def emit(self, event: str, params: dict[str, Any]) -> None:
        for callback in self.subscriptions.get(event, []):
            callback(params)

    def bring_to_front(self) -> None:
        self._check()
        self.front_calls += 1
        if self.fail_front:
            raise HttpClientError("bringToFront failed")

    def handle_dialog(self, accept: bool, prompt_text: str | None = None) -> None:
        if self.dialog_error is not None:
            raise self.dialog_error
        self.dialog_answers.append((accept, prompt_text))

    def close(self) -> None:
        if self.fail_close:
            self.closed = True
            raise HttpClientError("Target closed")
        self.closed = True

    def dispose(self) -> None:
        self.disposed = True

    def call(self, function_source: str, *args: Any, timeout: float | None = None) -> Any:  # noqa: ARG002
        self._check()
        self.evaluated.append(function_source)
        return self.call_handler(function_source, *args)

    def element_rect(self, selector: str) -> dict[str, float] | None:
        self._check()
        return self.rects.get(selector)

    def wait_for_selector(self, selector: str, *, visible: bool = True, timeout: float = 10.0) -> None:  # noqa: ARG002
        self._check()
        if selector not in self.rects:
            raise HttpClientError(f"Waiting for selector `{selector}` failed: {int(timeout * 1000)} ms exceeded")

    def click(self, x: float, y: float) -> None:
        self._check()
        self.inputs.append(("click", x, y))

    def move_mouse(self, x: float, y: float) -> None:
        self._check()
        self.inputs.append(("move", x, y))

    def insert_text(self, text: str) -> None:
        self._check()
        self.inputs.append(("text", text))

    def set_viewport(self, width: int, height: int) -> None:
        self._check()
        self.viewport = (width, height)

    def screenshot(self, *, full_page: bool = False, clip: dict[str, float] | None = None) -> str:
        self._check()
        self.screenshots.append({"full_page": full_page, "clip": clip})
        return self.screenshot_data


class FakeBrowser:
    def __init__(self, targets: list[dict[str, Any]] | None = None) -> None:
        self.targets = list(targets or [])
        self.pages: list[FakePage] = []
        self.connected = True
        self.closed = False
        self._next = 1

    def _make(self, url: str = "about:blank") -> FakePage:
        page = FakePage(f"T{self._next}", url=url)
        self._next += 1
        self.pages.append(page)
        return page

    def list_targets(self) -> list[dict[str, Any]]:
        return list(self.targets)

    def attach(self, target: dict[str, Any]) -> FakePage:
        page = FakePage(str(target["id"]), url=str(target.get("url") or ""), title=str(target.get("title") or ""))
        self.pages.append(page)
        return page

    def new_page(self, url: str = "about:blank") -> FakePage:
        return self._make(url)

    def is_connected(self) -> bool:
        return self.connected

    def close(self) -> None:
        self.closed = True


class FakeLauncher:
    def __init__(self, ready: bool = True) -> None:
        self.ready = ready
        self.shutdowns = 0
        self.process = None
        self.exited = False

    def ensure_running(self, timeout: float | None = None) -> LaunchResult:  # noqa: ARG002
        if self.ready:
            return LaunchResult([], True, True, "Browser launched")
        return LaunchResult([], False, False, "Failed to start browser: not found")

    def reap(self) -> bool:
        exited, self.exited = self.exited, False
        return exited

    def shutdown(self, timeout: float = 5.0) -> None:  # noqa: ARG002
        self.shutdowns += 1


def sync_spawn(fn: Callable[[], None], name: str) -> None:  # noqa: ARG001
    fn()


@pytest.fixture
def config() -> BrowserConfig:
    return BrowserConfig(binary_path="/usr/bin/chromium", profile_path="/tmp/tabgrid-test-profile")


@pytest.fixture
def fake_browser() -> FakeBrowser:
    return FakeBrowser()


@pytest.fixture
def fake_launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def make_ctx(config: BrowserConfig, fake_launcher: FakeLauncher) -> Callable[..., AppContext]:
    from mcp_servers.tabgrid.dialogs import DialogInterceptor

    def _make(browser: FakeBrowser | None = None, launcher: FakeLauncher | None = None) -> AppContext:
        browsers = [browser or FakeBrowser()]

        def factory(_launcher: Any) -> Any:
            # Each bootstrap after a disconnect gets a fresh browser.
            if browsers:
                return browsers.pop(0)
            return FakeBrowser()

        return AppContext(
            config,
            launcher=launcher or fake_launcher,  # type: ignore[arg-type]
            browser_factory=factory,
            dialogs=DialogInterceptor(spawn=sync_spawn),
        )

    return _make

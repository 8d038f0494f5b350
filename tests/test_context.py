from __future__ import annotations

from typing import Any

import pytest
from conftest import FakeBrowser, FakeLauncher

from mcp_servers.tabgrid.context import DISCONNECT_CHECKS, BootstrapError
from mcp_servers.tabgrid.dialogs import DIALOG_EVENT, DIALOG_OVERRIDE_SCRIPT
from mcp_servers.tabgrid.grid import grid_bootstrap_script
from mcp_servers.tabgrid.tools.base import SmartToolError


def test_start_creates_first_tab_and_navigates_blank_page(make_ctx: Any) -> None:
    browser = FakeBrowser()
    ctx = make_ctx(browser)

    registry = ctx.start()

    page = browser.pages[0]
    assert registry.session_ids() == ["tab_1"]
    assert registry.active_page() is page
    assert page.navigations == [ctx.config.initial_url]
    # Dialog handling, grid and console capture are installed together.
    assert DIALOG_OVERRIDE_SCRIPT in page.scripts
    assert grid_bootstrap_script(ctx.config.grid_rows, ctx.config.grid_columns) in page.scripts
    assert DIALOG_EVENT in page.subscriptions
    assert "Runtime.consoleAPICalled" in page.subscriptions


def test_start_reuses_existing_target_without_navigation(make_ctx: Any) -> None:
    browser = FakeBrowser(targets=[{"id": "ABC", "url": "https://already.example", "type": "page"}])
    ctx = make_ctx(browser)

    ctx.start()

    assert browser.pages[0].target_id == "ABC"
    assert browser.pages[0].navigations == []


def test_start_is_idempotent(make_ctx: Any) -> None:
    ctx = make_ctx()
    assert ctx.start() is ctx.start()


def test_initial_navigation_failure_is_not_fatal(make_ctx: Any) -> None:
    class SlowBrowser(FakeBrowser):
        def new_page(self, url: str = "about:blank") -> Any:
            page = super().new_page(url)
            page.fail_navigate = "Navigation timeout of 60000 ms exceeded"
            return page

    ctx = make_ctx(SlowBrowser())
    assert ctx.start().session_ids() == ["tab_1"]


def test_launch_failure_raises_bootstrap_error(make_ctx: Any) -> None:
    ctx = make_ctx(launcher=FakeLauncher(ready=False))
    with pytest.raises(BootstrapError, match="not found"):
        ctx.start()
    assert ctx.registry is None


def test_require_page_raises_unavailable_when_no_tab_is_open(make_ctx: Any) -> None:
    browser = FakeBrowser()
    ctx = make_ctx(browser)
    ctx.start()
    browser.pages[0].closed = True

    assert ctx.ensure_page() is None
    with pytest.raises(SmartToolError) as exc:
        ctx.require_page()
    assert "No active browser tab" in exc.value.reason


def test_ensure_page_recovers_from_closed_active_tab(make_ctx: Any) -> None:
    browser = FakeBrowser()
    ctx = make_ctx(browser)
    registry = ctx.start()
    second = registry.create().page
    browser.pages[0].closed = True

    assert ctx.require_page() is second
    assert registry.active_id == "tab_2"


def test_disconnect_resets_and_bootstraps_again(make_ctx: Any) -> None:
    browser = FakeBrowser()
    ctx = make_ctx(browser)
    first_registry = ctx.start()
    first_registry.create()
    ctx.screenshots.put("shot", "AAAA")
    browser.connected = False

    for _ in range(DISCONNECT_CHECKS - 1):
        assert ctx.ensure_registry() is first_registry
    registry = ctx.ensure_registry()

    assert registry is not first_registry
    assert registry.session_ids() == ["tab_1"]
    assert len(ctx.screenshots) == 0
    assert all(page.disposed for page in browser.pages)


def test_one_slow_health_check_keeps_every_tab(make_ctx: Any) -> None:
    browser = FakeBrowser()
    ctx = make_ctx(browser)
    first_registry = ctx.start()
    first_registry.create()
    first_registry.switch("tab_1")
    ctx.screenshots.put("shot", "AAAA")

    browser.connected = False
    assert ctx.ensure_registry() is first_registry
    browser.connected = True
    assert ctx.ensure_registry() is first_registry

    assert first_registry.session_ids() == ["tab_1", "tab_2"]
    assert first_registry.active_id == "tab_1"
    assert ctx.screenshots.get("shot") == "AAAA"
    assert not any(page.disposed for page in browser.pages)


def test_answered_check_clears_earlier_misses(make_ctx: Any) -> None:
    browser = FakeBrowser()
    ctx = make_ctx(browser)
    first_registry = ctx.start()

    for _ in range(3):
        browser.connected = False
        for _ in range(DISCONNECT_CHECKS - 1):
            ctx.ensure_registry()
        browser.connected = True
        assert ctx.ensure_registry() is first_registry


def test_exited_browser_process_resets_at_once(make_ctx: Any, fake_launcher: FakeLauncher) -> None:
    browser = FakeBrowser()
    ctx = make_ctx(browser)
    first_registry = ctx.start()
    fake_launcher.exited = True

    registry = ctx.ensure_registry()

    assert registry is not first_registry
    assert registry.session_ids() == ["tab_1"]


def test_console_messages_are_tagged_with_session(make_ctx: Any) -> None:
    browser = FakeBrowser()
    ctx = make_ctx(browser)
    notes: list[tuple[str, Any]] = []
    ctx.notifier = lambda method, params: notes.append((method, params))
    registry = ctx.start()
    second = registry.create().page

    second.emit(
        "Runtime.consoleAPICalled",
        {"type": "warning", "args": [{"type": "string", "value": "low disk"}, {"type": "number", "value": 3}]},
    )

    entries = ctx.console_logs.entries()
    assert len(entries) == 1
    assert entries[0].session_id == "tab_2"
    assert entries[0].text == "low disk 3"
    assert "[tab_2][WARNING] low disk 3" in ctx.console_logs.render()
    assert notes == [("notifications/resources/updated", {"uri": "console://logs"})]


def test_grid_engines_are_cached_per_page(make_ctx: Any) -> None:
    browser = FakeBrowser()
    ctx = make_ctx(browser)
    ctx.start()
    page = browser.pages[0]
    engine = ctx.grid(page)
    assert ctx.grid(page) is engine
    assert (engine.rows, engine.columns, engine.highlight_ms) == (20, 20, 2000)
    ctx.forget(page)
    assert ctx.grid(page) is not engine


def test_shutdown_is_idempotent(make_ctx: Any, fake_launcher: FakeLauncher) -> None:
    browser = FakeBrowser()
    ctx = make_ctx(browser)
    ctx.start()

    ctx.shutdown()
    ctx.shutdown()

    assert browser.closed is True
    assert fake_launcher.shutdowns == 1
    assert ctx.registry is None

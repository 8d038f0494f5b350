from __future__ import annotations

import http.server
import os
import socketserver
import tempfile
import threading
from collections.abc import Iterator
from pathlib import Path

import pytest

from mcp_servers.tabgrid.config import BrowserConfig
from mcp_servers.tabgrid.dialogs import AUTOMATED_RESPONSE, DialogInterceptor, DialogKind, get_suppressed_dialogs
from mcp_servers.tabgrid.grid import GridCoord, GridEngine
from mcp_servers.tabgrid.launcher import BrowserLauncher
from mcp_servers.tabgrid.page import Browser, PageHandle

pytestmark = pytest.mark.skipif(
    os.environ.get("RUN_BROWSER_INTEGRATION") != "1",
    reason="Requires real Chrome/Chromium. Set RUN_BROWSER_INTEGRATION=1 to enable.",
)

# 800x600 viewport with a 20x20 grid: cells are 40x30 px. The button center
# (260, 195) is exactly the center of cell (7, 7).
VIEWPORT = (800, 600)
TARGET_CELL = GridCoord(7, 7)
INDEX_HTML = """<!doctype html>
<html>
<head><title>tabgrid integration</title></head>
<body style="margin: 0">
  <button id="target" class="big"
          style="position: absolute; left: 200px; top: 150px; width: 120px; height: 90px"
          onclick="window.clicks = (window.clicks || 0) + 1">Press</button>
</body>
</html>
"""


@pytest.fixture(scope="module")
def local_url() -> Iterator[str]:
    with tempfile.TemporaryDirectory() as tmp_dir:
        tmp_path = Path(tmp_dir)
        (tmp_path / "index.html").write_text(INDEX_HTML, encoding="utf-8")

        class _Handler(http.server.SimpleHTTPRequestHandler):
            def __init__(self, *args, **kwargs):  # noqa: ANN001
                super().__init__(*args, directory=str(tmp_path), **kwargs)

            def log_message(self, format, *args):  # noqa: ANN001
                return

        socketserver.TCPServer.allow_reuse_address = True
        with socketserver.TCPServer(("127.0.0.1", 0), _Handler) as httpd:
            port = httpd.server_address[1]
            thread = threading.Thread(target=httpd.serve_forever, daemon=True)
            thread.start()
            try:
                yield f"http://127.0.0.1:{port}/index.html"
            finally:
                httpd.shutdown()
                thread.join(timeout=1.0)


@pytest.fixture(scope="module")
def browser() -> Iterator[Browser]:
    config = BrowserConfig.from_env()
    config.headless = True
    launcher = BrowserLauncher(config)
    result = launcher.ensure_running()
    if not result.ready:
        pytest.skip(result.message)
    browser = Browser(launcher, timeout=config.cdp_timeout)
    yield browser
    browser.close()


@pytest.fixture
def page(browser: Browser, local_url: str) -> Iterator[PageHandle]:
    page = browser.new_page()
    page.set_viewport(*VIEWPORT)
    page.navigate(local_url, timeout=15.0)
    yield page
    page.close()


@pytest.fixture
def grid(page: PageHandle) -> GridEngine:
    engine = GridEngine(page)
    assert engine.install() is True
    return engine


def test_grid_dimensions_follow_viewport(grid: GridEngine) -> None:
    dims = grid.dimensions()
    assert dims is not None
    assert (dims["rows"], dims["columns"]) == (20, 20)
    assert (dims["width"], dims["height"]) == VIEWPORT


def test_coord_for_and_resolve_cell_agree(grid: GridEngine) -> None:
    coord = grid.coord_for("#target")
    assert coord == TARGET_CELL

    element = grid.resolve_cell(coord.row, coord.col)

    assert element is not None
    assert element.tag_name == "BUTTON"
    assert element.id == "target"
    assert element.text_content == "Press"


def test_visible_overlay_does_not_change_resolution(grid: GridEngine) -> None:
    assert grid.set_visibility(True) is True
    shown = grid.resolve_cell(TARGET_CELL.row, TARGET_CELL.col)
    assert grid.set_visibility(False) is True
    hidden = grid.resolve_cell(TARGET_CELL.row, TARGET_CELL.col)

    assert shown is not None
    assert hidden is not None
    assert shown.id == hidden.id == "target"


def test_click_at_cell_clicks_the_element(page: PageHandle, grid: GridEngine) -> None:
    assert grid.click_at(TARGET_CELL.row, TARGET_CELL.col, visible=True) is True
    assert page.evaluate("window.clicks") == 1


def test_out_of_range_cells_miss_in_the_page(page: PageHandle, grid: GridEngine) -> None:
    assert grid.click_at(999, 999) is False
    assert grid.resolve_cell(999, 999) is None
    assert grid.coord_for("#does-not-exist") is None
    assert page.evaluate("window.clicks || 0") == 0


def test_confirm_is_accepted_and_recorded_once(page: PageHandle) -> None:
    assert DialogInterceptor().install(page) is True

    assert page.evaluate("confirm('Proceed?')") is True

    records = get_suppressed_dialogs(page)
    assert len(records) == 1
    assert records[0].kind is DialogKind.CONFIRM
    assert records[0].message == "Proceed?"


def test_prompt_answers_with_its_default_or_the_automated_response(page: PageHandle) -> None:
    assert DialogInterceptor().install(page) is True

    assert page.evaluate("prompt('Name?', 'bob')") == "bob"
    assert page.evaluate("prompt('Name?')") == AUTOMATED_RESPONSE
    assert page.evaluate("prompt('Empty?', '')") == ""

    with_default, without_default, empty_default = get_suppressed_dialogs(page)
    assert with_default.to_dict()["defaultValue"] == "bob"
    assert without_default.default_value is None
    assert "defaultValue" not in without_default.to_dict()
    assert empty_default.default_value == ""

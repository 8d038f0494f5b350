"""
One-shot page actions on the active tab.

Provides:
- navigate: load a URL and wait for the load event
- screenshot: viewport / full page / element capture, optionally grid-annotated
- click, fill, select, hover: selector-driven input
- evaluate: run arbitrary JavaScript
"""

from __future__ import annotations

import base64
from io import BytesIO
from typing import TYPE_CHECKING, Any

from PIL import Image, ImageDraw, ImageFont

from ..grid import cell_center
from ..http_client import HttpClientError
from ..resources import SCREENSHOT_SCHEME
from .base import SmartToolError, page_action

if TYPE_CHECKING:
    from ..context import AppContext
    from ..page import PageHandle

SELECTOR_TIMEOUT = 10.0
DEFAULT_SCREENSHOT_WIDTH = 1280
DEFAULT_SCREENSHOT_HEIGHT = 720

ILLEGAL_RETURN = "Illegal return statement"


def _element_center(page: PageHandle, selector: str, tool: str) -> tuple[float, float]:
    page.wait_for_selector(selector, visible=True, timeout=SELECTOR_TIMEOUT)
    rect = page.element_rect(selector)
    if not rect:
        raise SmartToolError(
            tool=tool,
            action="locate",
            reason=f"Element not found: {selector}",
            suggestion="Check the selector, or use element_at_grid to inspect the page",
        )
    return rect["x"] + rect["width"] / 2, rect["y"] + rect["height"] / 2


def navigate(ctx: AppContext, url: str) -> dict[str, Any]:
    with page_action(ctx, "navigate", "navigate", "Check URL is valid and accessible") as page:
        page.navigate(url, timeout=ctx.config.navigation_timeout)
    return {"url": url}


def _load_font(size: int) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    try:
        return ImageFont.truetype("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf", size)
    except OSError:
        return ImageFont.load_default()


def annotate_grid(data_b64: str, rows: int, columns: int) -> str:
    """Draw the grid lines and `row,col` labels onto a viewport PNG.

    Returns the input unchanged when the image cannot be decoded.
    """
    try:
        img = Image.open(BytesIO(base64.b64decode(data_b64))).convert("RGBA")
    except (OSError, ValueError):
        return data_b64

    width, height = img.size
    overlay = Image.new("RGBA", img.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    font = _load_font(max(8, min(14, int(min(width / columns, height / rows) / 3))))

    for c in range(1, columns):
        x = width * c / columns
        draw.line([(x, 0), (x, height)], fill=(255, 0, 0, 110), width=1)
    for r in range(1, rows):
        y = height * r / rows
        draw.line([(0, y), (width, y)], fill=(255, 0, 0, 110), width=1)

    for r in range(1, rows + 1):
        for c in range(1, columns + 1):
            center = cell_center(r, c, rows, columns, width, height)
            if center is None:
                continue
            text = f"{r},{c}"
            bbox = draw.textbbox((0, 0), text, font=font)
            text_w, text_h = bbox[2] - bbox[0], bbox[3] - bbox[1]
            draw.text((center[0] - text_w / 2, center[1] - text_h / 2), text, fill=(200, 0, 0, 200), font=font)

    out = Image.alpha_composite(img, overlay).convert("RGB")
    buffer = BytesIO()
    out.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode()


def screenshot(
    ctx: AppContext,
    name: str,
    selector: str | None = None,
    full_page: bool = False,
    width: int = DEFAULT_SCREENSHOT_WIDTH,
    height: int = DEFAULT_SCREENSHOT_HEIGHT,
    grid: bool = False,
) -> dict[str, Any]:
    """Capture and store a screenshot under `name` (resource screenshot://<name>)."""
    with page_action(ctx, "screenshot", "capture", "Page might be invalid or empty") as page:
        if selector:
            rect = page.element_rect(selector)
            if not rect:
                raise SmartToolError(
                    tool="screenshot",
                    action="capture",
                    reason=f"Element not found for screenshot: {selector}",
                    suggestion="Check the selector",
                )
            data = page.screenshot(clip=rect)
            description = f"of element '{selector}'"
        else:
            page.set_viewport(width, height)
            data = page.screenshot(full_page=full_page)
            description = "(full page)" if full_page else f"(viewport {width}x{height})"

    if not data:
        raise SmartToolError(
            tool="screenshot",
            action="capture",
            reason="Screenshot failed (page might be invalid or empty)",
            suggestion="Retry after the page has loaded",
        )

    if grid and not selector and not full_page:
        engine = ctx.grid(page)
        data = annotate_grid(data, engine.rows, engine.columns)
        description += " with grid"

    ctx.screenshots.put(name, data)
    uri = f"{SCREENSHOT_SCHEME}{name}"
    ctx.notify("notifications/resources/list_changed")
    ctx.notify("notifications/resources/updated", {"uri": uri})
    return {"name": name, "uri": uri, "description": f"Screenshot '{name}' taken {description}", "data": data}


def click(ctx: AppContext, selector: str) -> dict[str, Any]:
    with page_action(ctx, "click", "click", "Check the selector matches a visible element") as page:
        x, y = _element_center(page, selector, "click")
        page.click(x, y)
    return {"clicked": selector}


_FOCUS_AND_CLEAR_JS = """(sel) => {
  const el = document.querySelector(sel);
  if (!el) return false;
  el.focus();
  if ('value' in el) el.value = '';
  else if (el.isContentEditable) el.textContent = '';
  return true;
}"""

_DISPATCH_CHANGE_JS = """(sel) => {
  const el = document.querySelector(sel);
  if (!el) return false;
  el.dispatchEvent(new Event('input', { bubbles: true }));
  el.dispatchEvent(new Event('change', { bubbles: true }));
  return true;
}"""

_SELECT_OPTION_JS = """(sel, value) => {
  const el = document.querySelector(sel);
  if (!el) return { ok: false, reason: 'not_found' };
  if (el.tagName !== 'SELECT') return { ok: false, reason: 'not_select' };
  const option = Array.from(el.options).find((o) => o.value === value);
  if (!option) return { ok: false, reason: 'no_option' };
  el.value = value;
  el.dispatchEvent(new Event('input', { bubbles: true }));
  el.dispatchEvent(new Event('change', { bubbles: true }));
  return { ok: true, selected: Array.from(el.selectedOptions).map((o) => o.value) };
}"""


def fill(ctx: AppContext, selector: str, value: str) -> dict[str, Any]:
    with page_action(ctx, "fill", "fill", "Check the selector matches an input field") as page:
        page.wait_for_selector(selector, visible=True, timeout=SELECTOR_TIMEOUT)
        if page.call(_FOCUS_AND_CLEAR_JS, selector) is not True:
            raise SmartToolError(
                tool="fill",
                action="focus",
                reason=f"Element not found: {selector}",
                suggestion="Check the selector",
            )
        page.insert_text(value)
        page.call(_DISPATCH_CHANGE_JS, selector)
    return {"filled": selector, "value": value}


def select(ctx: AppContext, selector: str, value: str) -> dict[str, Any]:
    with page_action(ctx, "select", "select", "Check the selector matches a <select> element") as page:
        page.wait_for_selector(selector, visible=True, timeout=SELECTOR_TIMEOUT)
        res = page.call(_SELECT_OPTION_JS, selector, value)
    if not isinstance(res, dict) or not res.get("ok"):
        reason = res.get("reason") if isinstance(res, dict) else "unknown"
        raise SmartToolError(
            tool="select",
            action="select",
            reason=f"Cannot select '{value}' in {selector}: {reason}",
            suggestion="Check the option value attribute",
        )
    return {"selected": res.get("selected") or [value], "selector": selector}


def hover(ctx: AppContext, selector: str) -> dict[str, Any]:
    with page_action(ctx, "hover", "hover", "Check the selector matches a visible element") as page:
        x, y = _element_center(page, selector, "hover")
        page.move_mouse(x, y)
    return {"hovered": selector}


def evaluate(ctx: AppContext, script: str) -> dict[str, Any]:
    """Run JavaScript in the active tab as given.

    A script with a top-level `return` is a SyntaxError as an expression; only
    then it is retried as the body of an async function.
    """
    with page_action(ctx, "evaluate", "evaluate", "Check the script for errors") as page:
        try:
            result = page.evaluate(script)
        except HttpClientError as e:
            if ILLEGAL_RETURN not in str(e):
                raise
            result = page.evaluate(f"(async () => {{\n{script}\n}})()")
    return {"result": result}

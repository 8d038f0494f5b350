"""
Coordinate grid: position-based element targeting.

The page carries an invisible, viewport-fixed overlay of rows x columns cells
(1-based `data-row` / `data-col`). The overlay never takes pointer events, so
`document.elementFromPoint` at a cell center sees the real content below it.

All in-page logic lives in one self-contained script (`GRID_SCRIPT_SOURCE`)
exposing `globalThis.__tabgridGrid`. Only plain data crosses the page boundary.
The host side (`GridEngine`) never raises: misses and failures are reported as
None / False.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .http_client import HttpClientError

if TYPE_CHECKING:
    from .page import PageHandle

logger = logging.getLogger("mcp.tabgrid.grid")

GRID_CONTAINER_ID = "tabgrid-invisible-grid"
DEFAULT_ROWS = 20
DEFAULT_COLUMNS = 20
DEFAULT_HIGHLIGHT_MS = 2000
TEXT_CONTENT_LIMIT = 100

GRID_SCRIPT_SOURCE = r"""
(() => {
  const VERSION = 1;
  if (globalThis.__tabgridGrid && globalThis.__tabgridGrid.__version === VERSION) return;

  const CONTAINER_ID = __CONTAINER_ID__;
  const TEXT_LIMIT = __TEXT_LIMIT__;

  const isIndex = (v) => Number.isInteger(v) && v >= 1;
  const container = () => document.getElementById(CONTAINER_ID);
  const cellAt = (grid, row, col) => {
    if (!isIndex(row) || !isIndex(col)) return null;
    return grid.querySelector(`[data-row="${row}"][data-col="${col}"]`);
  };
  const centerOf = (rect) => ({ x: rect.left + rect.width / 2, y: rect.top + rect.height / 2 });

  const hitTest = (grid, x, y) => {
    grid.style.pointerEvents = 'none';
    const el = document.elementFromPoint(x, y);
    if (!el || el === grid || grid.contains(el)) return null;
    return el;
  };

  const describe = (el) => {
    const r = el.getBoundingClientRect();
    const cls = typeof el.className === 'string' ? el.className : (el.getAttribute && el.getAttribute('class')) || '';
    const attrs = typeof el.getAttributeNames === 'function'
      ? el.getAttributeNames().map((name) => ({ name, value: el.getAttribute(name) }))
      : [];
    return {
      tagName: el.tagName,
      id: el.id || '',
      className: cls,
      textContent: ((el.textContent || '').trim()).substring(0, TEXT_LIMIT),
      attributes: attrs,
      rect: { x: r.x, y: r.y, width: r.width, height: r.height, top: r.top, right: r.right, bottom: r.bottom, left: r.left },
    };
  };

  const install = (rows, columns, zIndex) => {
    if (!isIndex(rows) || !isIndex(columns) || !document.body) return false;
    const existing = container();
    if (existing) existing.remove();

    const grid = document.createElement('div');
    grid.id = CONTAINER_ID;
    grid.dataset.rows = String(rows);
    grid.dataset.columns = String(columns);
    grid.style.cssText = [
      'position: fixed', 'top: 0', 'left: 0', 'width: 100vw', 'height: 100vh',
      `z-index: ${Number.isInteger(zIndex) ? zIndex : -1}`, 'pointer-events: none', 'display: grid',
      `grid-template-columns: repeat(${columns}, 1fr)`, `grid-template-rows: repeat(${rows}, 1fr)`,
      'opacity: 0', 'border: none', 'margin: 0', 'padding: 0', 'box-sizing: border-box',
    ].join('; ');

    for (let r = 1; r <= rows; r++) {
      for (let c = 1; c <= columns; c++) {
        const cell = document.createElement('div');
        cell.className = 'grid-cell';
        cell.setAttribute('data-row', String(r));
        cell.setAttribute('data-col', String(c));
        cell.style.cssText = `grid-row: ${r}; grid-column: ${c}; border: 0; padding: 0; margin: 0; box-sizing: border-box; pointer-events: none;`;
        grid.appendChild(cell);
      }
    }
    document.body.appendChild(grid);
    window._tabgridGridDimensions = { rows, columns };
    return true;
  };

  const elementAt = (row, col) => {
    const grid = container();
    if (!grid) return null;
    const cell = cellAt(grid, row, col);
    if (!cell) return null;
    const p = centerOf(cell.getBoundingClientRect());
    const el = hitTest(grid, p.x, p.y);
    return el ? describe(el) : null;
  };

  const clickAt = (row, col, visible, highlightMs) => {
    const grid = container();
    if (!grid) return false;
    const cell = cellAt(grid, row, col);
    if (!cell) return false;
    const rect = cell.getBoundingClientRect();
    const p = centerOf(rect);

    if (visible) {
      const hl = document.createElement('div');
      hl.style.cssText = `position: fixed; left: ${rect.left}px; top: ${rect.top}px; width: ${rect.width}px; height: ${rect.height}px; background-color: rgba(255,0,0,0.3); border: 2px solid red; z-index: 10000; pointer-events: none; box-sizing: border-box;`;
      document.body.appendChild(hl);
      setTimeout(() => hl.remove(), Number.isFinite(highlightMs) ? highlightMs : 2000);
    }

    const el = hitTest(grid, p.x, p.y);
    if (!el || typeof el.click !== 'function') return false;
    el.click();
    return true;
  };

  const coordFor = (selector) => {
    const grid = container();
    if (!grid) return null;
    let el = null;
    try {
      el = document.querySelector(selector);
    } catch (e) {
      return null;
    }
    if (!el) return null;
    const target = centerOf(el.getBoundingClientRect());

    let best = null;
    let bestDistance = Infinity;
    for (const cell of grid.querySelectorAll('.grid-cell')) {
      const c = centerOf(cell.getBoundingClientRect());
      const d = Math.hypot(target.x - c.x, target.y - c.y);
      if (d < bestDistance) {
        bestDistance = d;
        best = cell;
      }
    }
    if (!best) return null;
    return { row: parseInt(best.getAttribute('data-row'), 10), col: parseInt(best.getAttribute('data-col'), 10) };
  };

  const setVisibility = (visible, labeled) => {
    const grid = container();
    if (!grid) return false;
    grid.style.pointerEvents = 'none';
    grid.style.opacity = visible ? '0.5' : '0';
    grid.style.backgroundColor = visible ? 'rgba(0,0,255,0.05)' : 'transparent';
    grid.style.zIndex = visible ? '10000' : '-1';
    for (const cell of grid.querySelectorAll('.grid-cell')) {
      cell.style.pointerEvents = 'none';
      cell.style.border = visible ? '1px dashed rgba(0,0,0,0.3)' : '0';
      if (visible && labeled) {
        cell.textContent = `${cell.getAttribute('data-row')},${cell.getAttribute('data-col')}`;
        cell.style.display = 'flex';
        cell.style.justifyContent = 'center';
        cell.style.alignItems = 'center';
        cell.style.fontSize = '8px';
        cell.style.color = 'rgba(0,0,0,0.7)';
        cell.style.overflow = 'hidden';
      } else {
        cell.textContent = '';
      }
    }
    return true;
  };

  const dimensions = () => {
    const grid = container();
    if (!grid) return null;
    return {
      rows: parseInt(grid.dataset.rows, 10),
      columns: parseInt(grid.dataset.columns, 10),
      width: window.innerWidth,
      height: window.innerHeight,
    };
  };

  globalThis.__tabgridGrid = { __version: VERSION, install, elementAt, clickAt, coordFor, setVisibility, dimensions };
})();
""".replace("__CONTAINER_ID__", json.dumps(GRID_CONTAINER_ID)).replace("__TEXT_LIMIT__", str(TEXT_CONTENT_LIMIT))


def grid_bootstrap_script(rows: int, columns: int) -> str:
    """Source registered for every new document: API plus install on `load`."""
    return (
        GRID_SCRIPT_SOURCE
        + f"""
(() => {{
  const boot = () => {{
    try {{ globalThis.__tabgridGrid.install({int(rows)}, {int(columns)}, -1); }} catch (e) {{}}
  }};
  if (document.readyState === 'complete') boot();
  else window.addEventListener('load', boot, {{ once: true }});
}})();
"""
    )


@dataclass(frozen=True)
class GridCoord:
    row: int
    col: int

    def to_dict(self) -> dict[str, int]:
        return {"row": self.row, "col": self.col}


@dataclass(frozen=True)
class ElementDescriptor:
    """Topmost real element under a grid cell center."""

    tag_name: str
    id: str
    class_name: str
    text_content: str
    attributes: list[dict[str, str | None]] = field(default_factory=list)
    rect: dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ElementDescriptor:
        attrs = raw.get("attributes")
        rect = raw.get("rect")
        return cls(
            tag_name=str(raw.get("tagName") or ""),
            id=str(raw.get("id") or ""),
            class_name=str(raw.get("className") or ""),
            text_content=str(raw.get("textContent") or "")[:TEXT_CONTENT_LIMIT],
            attributes=[a for a in attrs if isinstance(a, dict)] if isinstance(attrs, list) else [],
            rect={k: float(v) for k, v in rect.items() if isinstance(v, (int, float))} if isinstance(rect, dict) else {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "tagName": self.tag_name,
            "id": self.id,
            "className": self.class_name,
            "textContent": self.text_content,
            "attributes": list(self.attributes),
            "rect": dict(self.rect),
        }


def _as_index(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


# Host-side mirrors of the in-page cell math (proportional layout).


def cell_center(row: int, col: int, rows: int, columns: int, width: float, height: float) -> tuple[float, float] | None:
    if not (1 <= row <= rows and 1 <= col <= columns):
        return None
    cell_w = width / columns
    cell_h = height / rows
    return (col - 1) * cell_w + cell_w / 2, (row - 1) * cell_h + cell_h / 2


def nearest_cell(x: float, y: float, rows: int, columns: int, width: float, height: float) -> GridCoord | None:
    """Cell whose center is closest to (x, y); the first minimum in row-major order wins."""
    best: GridCoord | None = None
    best_distance = math.inf
    for r in range(1, rows + 1):
        for c in range(1, columns + 1):
            center = cell_center(r, c, rows, columns, width, height)
            if center is None:
                continue
            distance = math.hypot(x - center[0], y - center[1])
            if distance < best_distance:
                best_distance = distance
                best = GridCoord(r, c)
    return best


class GridEngine:
    """Host-side API for the grid overlay of one page."""

    def __init__(
        self,
        page: PageHandle,
        rows: int = DEFAULT_ROWS,
        columns: int = DEFAULT_COLUMNS,
        highlight_ms: int = DEFAULT_HIGHLIGHT_MS,
    ) -> None:
        self.page = page
        self.rows = rows
        self.columns = columns
        self.highlight_ms = highlight_ms

    def _invoke(self, method: str, *args: Any) -> Any:
        if self.page.is_closed():
            return None
        encoded = ", ".join(json.dumps(arg) for arg in args)
        # The source is a no-op when the API already exists on this document.
        expression = f"{GRID_SCRIPT_SOURCE}\nglobalThis.__tabgridGrid.{method}({encoded});"
        try:
            return self.page.evaluate(expression)
        except HttpClientError as exc:
            logger.error("grid %s failed on %s: %s", method, self.page.target_id, exc)
            return None

    def enhance(self) -> bool:
        """Register auto-install for future documents and install on the current one."""
        if self.page.is_closed():
            logger.warning("Attempted to enhance a closed page.")
            return False
        try:
            self.page.add_script_on_new_document(grid_bootstrap_script(self.rows, self.columns))
        except HttpClientError as exc:
            logger.error("Failed to register grid script (page might have closed): %s", exc)
            return False
        return self.install()

    def install(self, rows: int | None = None, columns: int | None = None) -> bool:
        rows = _as_index(self.rows if rows is None else rows)
        columns = _as_index(self.columns if columns is None else columns)
        if rows is None or columns is None or rows < 1 or columns < 1:
            return False
        ok = self._invoke("install", rows, columns, -1) is True
        if ok:
            self.rows, self.columns = rows, columns
        return ok

    def resolve_cell(self, row: Any, col: Any) -> ElementDescriptor | None:
        r, c = _as_index(row), _as_index(col)
        if r is None or c is None:
            return None
        raw = self._invoke("elementAt", r, c)
        return ElementDescriptor.from_dict(raw) if isinstance(raw, dict) else None

    def click_at(self, row: Any, col: Any, visible: bool = False) -> bool:
        r, c = _as_index(row), _as_index(col)
        if r is None or c is None:
            return False
        return self._invoke("clickAt", r, c, bool(visible), self.highlight_ms) is True

    def coord_for(self, selector: str) -> GridCoord | None:
        if not isinstance(selector, str) or not selector.strip():
            return None
        raw = self._invoke("coordFor", selector)
        if not isinstance(raw, dict):
            return None
        r, c = _as_index(raw.get("row")), _as_index(raw.get("col"))
        if r is None or c is None:
            return None
        return GridCoord(r, c)

    def set_visibility(self, visible: bool = True, labeled: bool = True) -> bool:
        return self._invoke("setVisibility", bool(visible), bool(labeled)) is True

    def dimensions(self) -> dict[str, int] | None:
        raw = self._invoke("dimensions")
        return raw if isinstance(raw, dict) else None

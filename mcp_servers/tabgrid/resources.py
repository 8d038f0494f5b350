"""
MCP resources: console output of all tabs and named screenshots.

- console://logs        text/plain, one `[ts][tab_n][LEVEL] text` line per entry
- screenshot://<name>   image/png, base64 blob
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

CONSOLE_URI = "console://logs"
SCREENSHOT_SCHEME = "screenshot://"
EMPTY_CONSOLE_TEXT = "No console logs yet."


class ResourceNotFound(LookupError):
    def __init__(self, uri: str) -> None:
        super().__init__(f"Resource not found: {uri}")
        self.uri = uri


@dataclass(frozen=True)
class ConsoleEntry:
    timestamp: str
    level: str
    text: str
    session_id: str | None = None

    def render(self) -> str:
        tag = f"[{self.session_id}]" if self.session_id else ""
        return f"[{self.timestamp}]{tag}[{self.level.upper()}] {self.text}"


def _remote_object_text(obj: Any) -> str:
    if not isinstance(obj, dict):
        return str(obj)
    if "value" in obj:
        value = obj["value"]
        return value if isinstance(value, str) else str(value)
    if obj.get("unserializableValue"):
        return str(obj["unserializableValue"])
    return str(obj.get("description") or obj.get("type") or "")


def console_entry_from_event(params: dict[str, Any], session_id: str | None) -> ConsoleEntry:
    """Build an entry from Runtime.consoleAPICalled params."""
    args = params.get("args") if isinstance(params.get("args"), list) else []
    text = " ".join(_remote_object_text(arg) for arg in args)
    ts = params.get("timestamp")
    if isinstance(ts, (int, float)):
        when = datetime.fromtimestamp(ts / 1000.0, tz=timezone.utc)
    else:
        when = datetime.now(timezone.utc)
    timestamp = when.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return ConsoleEntry(timestamp=timestamp, level=str(params.get("type") or "log"), text=text, session_id=session_id)


class ConsoleLogStore:
    """Bounded, chronological console log shared by all tabs.

    Appended from event-bus threads, read from the dispatch thread.
    """

    def __init__(self, max_entries: int = 1000) -> None:
        self._entries: deque[ConsoleEntry] = deque(maxlen=max(1, max_entries))
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, entry: ConsoleEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def entries(self) -> list[ConsoleEntry]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def render(self) -> str:
        lines = [entry.render() for entry in self.entries()]
        return "\n".join(lines) if lines else EMPTY_CONSOLE_TEXT


class ScreenshotStore:
    """Named PNG screenshots (base64), insertion ordered; same name overwrites."""

    def __init__(self) -> None:
        self._shots: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._shots)

    def __contains__(self, name: object) -> bool:
        return name in self._shots

    def put(self, name: str, data_b64: str) -> None:
        self._shots[name] = data_b64

    def get(self, name: str) -> str | None:
        return self._shots.get(name)

    def names(self) -> list[str]:
        return list(self._shots)

    def clear(self) -> None:
        self._shots.clear()


def list_resources(console: ConsoleLogStore, screenshots: ScreenshotStore) -> list[dict[str, Any]]:
    resources: list[dict[str, Any]] = [
        {
            "uri": CONSOLE_URI,
            "mimeType": "text/plain",
            "name": "Browser console logs (All Tabs)",
            "description": "Aggregated console logs from all browser tabs.",
        }
    ]
    for name in screenshots.names():
        resources.append(
            {
                "uri": f"{SCREENSHOT_SCHEME}{name}",
                "mimeType": "image/png",
                "name": f"Screenshot: {name}",
                "description": f"Screenshot captured with name '{name}'.",
            }
        )
    return resources


def read_resource(uri: str, console: ConsoleLogStore, screenshots: ScreenshotStore) -> list[dict[str, Any]]:
    """Contents for resources/read; raises ResourceNotFound for unknown URIs."""
    if uri == CONSOLE_URI:
        return [{"uri": uri, "mimeType": "text/plain", "text": console.render()}]
    if uri.startswith(SCREENSHOT_SCHEME):
        data = screenshots.get(uri[len(SCREENSHOT_SCHEME) :])
        if data:
            return [{"uri": uri, "mimeType": "image/png", "blob": data}]
    raise ResourceNotFound(uri)

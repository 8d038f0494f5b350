"""
Chrome DevTools Protocol transport.

- CdpConnection: request/response over one WebSocket, events queued while waiting
- PageEventBus: background reader that fans page events out to subscribers

Command connections are used from the dispatch thread only. Every event bus owns
its own connection so that dialogs, loads and console messages are observed even
while no tool call is running.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import defaultdict
from collections.abc import Callable
from contextlib import suppress
from typing import Any

import websocket

from .http_client import HttpClientError

logger = logging.getLogger("mcp.tabgrid.cdp")

EventCallback = Callable[[dict[str, Any]], None]

# Events after which the target is gone for good.
TERMINAL_EVENTS = {"Inspector.detached", "Inspector.targetCrashed"}


def _is_timeout(exc: Exception) -> bool:
    return isinstance(exc, (TimeoutError, websocket.WebSocketTimeoutException)) or "timed out" in str(exc).lower()


class CdpConnection:
    """Low-level CDP WebSocket connection."""

    def __init__(self, ws_url: str, timeout: float = 5.0):
        try:
            self.ws = websocket.create_connection(ws_url, timeout=timeout)
        except (OSError, websocket.WebSocketException) as exc:
            raise HttpClientError(f"CDP connect failed: {exc}") from exc
        self.ws_url = ws_url
        self.timeout = timeout
        self._next_id = 1
        # Events must not be dropped while waiting for command responses,
        # otherwise waits on load/navigation become flaky.
        self._event_queue: list[dict[str, Any]] = []
        self._max_event_queue = 2000
        self._event_sink: EventCallback | None = None

    def set_event_sink(self, sink: EventCallback | None) -> None:
        self._event_sink = sink

    def _push_event(self, event: dict[str, Any]) -> None:
        sink = self._event_sink
        if sink is not None:
            try:
                sink(event)
            except Exception:  # noqa: BLE001
                logger.exception("cdp event sink failed")

        self._event_queue.append(event)
        if len(self._event_queue) > self._max_event_queue:
            del self._event_queue[: len(self._event_queue) - self._max_event_queue]

    def pop_event(self, event_name: str) -> dict[str, Any] | None:
        """Pop the oldest queued event params for the given event name."""
        for i, ev in enumerate(self._event_queue):
            if ev.get("method") == event_name:
                self._event_queue.pop(i)
                params = ev.get("params")
                return params if isinstance(params, dict) else {}
        return None

    def discard_events(self, event_name: str) -> int:
        """Drop every queued event with the given name; returns how many were dropped."""
        kept = [ev for ev in self._event_queue if ev.get("method") != event_name]
        dropped = len(self._event_queue) - len(kept)
        self._event_queue = kept
        return dropped

    def drain_queue(self) -> list[dict[str, Any]]:
        events, self._event_queue = self._event_queue, []
        return events

    def send(self, method: str, params: dict[str, Any] | None = None, *, timeout: float | None = None) -> dict[str, Any]:
        """Send CDP command and wait for response."""
        msg_id = self._next_id
        self._next_id += 1

        msg: dict[str, Any] = {"id": msg_id, "method": method}
        if params:
            msg["params"] = params

        try:
            self.ws.settimeout(min(2.0, max(0.5, float(self.timeout))))
            self.ws.send(json.dumps(msg))
        except (OSError, websocket.WebSocketException) as exc:
            raise HttpClientError(str(exc)) from exc

        return self._recv_until(msg_id, timeout if timeout is not None else self.timeout)

    def _recv_until(self, expected_id: int, timeout: float) -> dict[str, Any]:
        """Wait for response with specific ID."""
        deadline = time.time() + timeout
        while True:
            remaining = deadline - time.time()
            if remaining <= 0:
                raise HttpClientError("CDP response timed out")

            try:
                self.ws.settimeout(min(0.5, remaining))
                raw = self.ws.recv()
            except (OSError, websocket.WebSocketException) as exc:
                if _is_timeout(exc):
                    continue
                raise HttpClientError(str(exc)) from exc

            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if not isinstance(data, dict):
                continue

            if isinstance(data.get("method"), str) and "id" not in data:
                self._push_event(data)
                continue

            if data.get("id") == expected_id:
                if "error" in data:
                    error = data["error"]
                    message = error.get("message") if isinstance(error, dict) else None
                    raise HttpClientError(str(message or error))
                result = data.get("result")
                return result if isinstance(result, dict) else {}

    def wait_for_event(self, event_name: str, timeout: float = 10.0) -> dict[str, Any] | None:
        """Wait for specific CDP event."""
        queued = self.pop_event(event_name)
        if queued is not None:
            return queued

        deadline = time.time() + timeout
        while time.time() < deadline:
            try:
                self.ws.settimeout(min(0.5, max(0.05, deadline - time.time())))
                raw = self.ws.recv()
            except (OSError, websocket.WebSocketException) as exc:
                if _is_timeout(exc):
                    continue
                raise HttpClientError(str(exc)) from exc
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if not isinstance(data, dict) or not isinstance(data.get("method"), str):
                continue
            if data["method"] == event_name:
                params = data.get("params")
                return params if isinstance(params, dict) else {}
            self._push_event(data)
        return None

    def close(self) -> None:
        """Close the WebSocket connection."""
        with suppress(Exception):
            self.ws.close()


class PageEventBus:
    """Background CDP event reader for one page target.

    Subscribers are called on the bus thread and must not block for long.
    A failing subscriber is logged and never breaks the loop.
    """

    def __init__(
        self,
        *,
        ws_url: str,
        name: str,
        on_disconnect: Callable[[str], None] | None = None,
        target_alive: Callable[[], bool] | None = None,
        connect_timeout: float = 5.0,
    ) -> None:
        self.ws_url = ws_url
        self._on_disconnect = on_disconnect
        self._target_alive = target_alive
        self._connect_timeout = connect_timeout
        self._subscribers: dict[str, list[EventCallback]] = defaultdict(list)
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._ready = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._conn: CdpConnection | None = None

    def subscribe(self, method: str, callback: EventCallback) -> None:
        with self._lock:
            self._subscribers[method].append(callback)

    def start(self, wait: float = 0.0) -> None:
        if self._thread.ident is None and not self._stop.is_set():
            self._thread.start()
        if wait > 0:
            self._ready.wait(wait)

    def stop(self) -> None:
        self._stop.set()
        conn = self._conn
        if conn is not None:
            conn.close()

    def dispatch(self, event: dict[str, Any]) -> None:
        method = event.get("method")
        if not isinstance(method, str):
            return
        with self._lock:
            callbacks = list(self._subscribers.get(method, ()))
        for callback in callbacks:
            try:
                callback(event.get("params") or {})
            except Exception:  # noqa: BLE001
                logger.exception("event subscriber failed for %s", method)

    def _disconnect(self, reason: str) -> None:
        self._stop.set()
        if self._on_disconnect is not None:
            try:
                self._on_disconnect(reason)
            except Exception:  # noqa: BLE001
                logger.exception("disconnect callback failed")

    def _run(self) -> None:
        backoff = 0.2
        while not self._stop.is_set():
            conn: CdpConnection | None = None
            try:
                conn = CdpConnection(self.ws_url, timeout=self._connect_timeout)
                self._conn = conn
                conn.set_event_sink(None)
                for domain in ("Page.enable", "Runtime.enable", "Inspector.enable"):
                    conn.send(domain)
                for event in conn.drain_queue():
                    self.dispatch(event)
                self._ready.set()
                backoff = 0.2

                while not self._stop.is_set():
                    try:
                        conn.ws.settimeout(0.5)
                        raw = conn.ws.recv()
                    except (OSError, websocket.WebSocketException) as exc:
                        if _is_timeout(exc):
                            continue
                        raise
                    try:
                        data = json.loads(raw)
                    except json.JSONDecodeError:
                        continue
                    if not isinstance(data, dict) or "id" in data or not isinstance(data.get("method"), str):
                        continue
                    self.dispatch(data)
                    if data["method"] in TERMINAL_EVENTS:
                        self._disconnect(data["method"])
                        return
            except Exception as exc:  # noqa: BLE001
                if self._stop.is_set():
                    break
                logger.debug("event bus %s lost connection: %s", self.ws_url, exc)
            finally:
                if conn is not None:
                    conn.close()
                self._conn = None

            if self._stop.is_set():
                break
            if self._target_alive is not None and not self._target_alive():
                self._disconnect("target closed")
                return

            time.sleep(backoff)
            backoff = min(backoff * 1.5, 2.0)

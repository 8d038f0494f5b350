"""
Session registry: browser tabs addressed by `tab_<n>` ids.

Ids come from a per-registry counter and are never reused. A session whose page
died (crash, manual close) stays registered with `accessible == False` until it
is closed explicitly.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from .http_client import HttpClientError

if TYPE_CHECKING:
    from .page import Browser, PageHandle

logger = logging.getLogger("mcp.tabgrid.sessions")

Enhancer = Callable[["PageHandle", str], None]

CLOSED_TITLE = "Unknown Title (Page may be closed)"
CLOSED_URL = "unknown"
ERROR_TITLE = "Error fetching title"
ERROR_URL = "error fetching url"


class SessionNotFound(LookupError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Tab {session_id} not found")
        self.session_id = session_id


class RegistryError(Exception):
    pass


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class Session:
    id: str
    page: PageHandle
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def accessible(self) -> bool:
        return not self.page.is_closed()


@dataclass
class SessionSummary:
    id: str
    title: str
    url: str
    is_active: bool
    is_accessible: bool
    metadata: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "isActive": self.is_active,
            "isAccessible": self.is_accessible,
            "metadata": dict(self.metadata),
        }


@dataclass
class CreateSessionOptions:
    url: str | None = None
    active: bool = False
    title: str | None = None

    @classmethod
    def from_arguments(cls, args: dict[str, Any]) -> CreateSessionOptions:
        url = args.get("url")
        title = args.get("title")
        return cls(
            url=str(url) if url else None,
            active=bool(args.get("active", False)),
            title=str(title) if title else None,
        )


@dataclass
class CreatedSession:
    session_id: str
    page: PageHandle
    navigation_error: str | None = None


class SessionRegistry:
    """Mapping of session id to page, plus the active-session pointer.

    Mutated only from the dispatch thread.
    """

    def __init__(
        self,
        browser: Browser,
        *,
        enhancer: Enhancer | None = None,
        navigation_timeout: float = 60.0,
    ) -> None:
        self.browser = browser
        self._enhancer = enhancer
        self.navigation_timeout = navigation_timeout
        self._sessions: dict[str, Session] = {}
        self._active_id: str | None = None
        self._next_id = 1

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))

    @property
    def active_id(self) -> str | None:
        return self._active_id

    def session_ids(self) -> list[str]:
        return list(self._sessions)

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def _allocate_id(self) -> str:
        session_id = f"tab_{self._next_id}"
        self._next_id += 1
        return session_id

    def _enhance(self, page: PageHandle, session_id: str) -> None:
        if self._enhancer is None:
            return
        try:
            self._enhancer(page, session_id)
        except HttpClientError as exc:
            logger.error("Failed to enhance tab %s: %s", session_id, exc)

    def bootstrap_first(self, page: PageHandle) -> str:
        if self._sessions:
            raise RegistryError("Registry already initialized")
        session_id = self._allocate_id()
        self._sessions[session_id] = Session(session_id, page, {"title": "Initial Tab", "createdAt": _now_iso()})
        self._active_id = session_id
        self._enhance(page, session_id)
        logger.info("Initial tab created with ID: %s", session_id)
        return session_id

    def create(self, options: CreateSessionOptions | None = None) -> CreatedSession:
        options = options or CreateSessionOptions()
        page = self.browser.new_page()
        session_id = self._allocate_id()

        metadata: dict[str, Any] = {"title": options.title or "New Tab", "createdAt": _now_iso(), "active": options.active}
        if options.url:
            metadata["url"] = options.url
        self._sessions[session_id] = Session(session_id, page, metadata)
        if options.active:
            self._active_id = session_id

        self._enhance(page, session_id)

        navigation_error: str | None = None
        if options.url:
            try:
                page.navigate(options.url, timeout=self.navigation_timeout)
            except HttpClientError as exc:
                logger.error("Error navigating new tab %s to %s: %s", session_id, options.url, exc)
                navigation_error = str(exc)
        return CreatedSession(session_id, page, navigation_error)

    def switch(self, session_id: str) -> PageHandle:
        session = self.get(session_id)
        self._active_id = session_id
        try:
            session.page.bring_to_front()
        except HttpClientError as exc:
            logger.error("Error bringing tab %s to front: %s", session_id, exc)
        return session.page

    def close(self, session_id: str) -> None:
        session = self.get(session_id)
        try:
            session.page.close()
        except HttpClientError as exc:
            logger.error("Error closing page for tab %s: %s", session_id, exc)
        del self._sessions[session_id]

        if self._active_id != session_id:
            return
        self._active_id = next(iter(self._sessions), None)
        if self._active_id is None:
            return
        try:
            self._sessions[self._active_id].page.bring_to_front()
        except HttpClientError as exc:
            logger.error("Error bringing new active tab %s to front: %s", self._active_id, exc)

    def list(self) -> list[SessionSummary]:
        summaries: list[SessionSummary] = []
        for session in self._sessions.values():
            title, url = CLOSED_TITLE, CLOSED_URL
            accessible = session.accessible
            if accessible:
                try:
                    title = session.page.title()
                    url = session.page.url()
                except HttpClientError as exc:
                    logger.error("Error getting title/url for tab %s: %s", session.id, exc)
                    title, url = ERROR_TITLE, ERROR_URL
                    accessible = False
            summaries.append(
                SessionSummary(
                    id=session.id,
                    title=title,
                    url=url,
                    is_active=session.id == self._active_id,
                    is_accessible=accessible,
                    metadata=session.metadata,
                )
            )
        return summaries

    def active_page(self) -> PageHandle | None:
        if self._active_id is None:
            return None
        session = self._sessions.get(self._active_id)
        if session is None or not session.accessible:
            return None
        return session.page

    def recover_active(self) -> PageHandle | None:
        """Active page, or a switch to the first accessible session when it is gone."""
        page = self.active_page()
        if page is not None:
            return page
        for session in self._sessions.values():
            if session.accessible:
                logger.info("Switching to first available open tab: %s", session.id)
                return self.switch(session.id)
        if self._sessions:
            logger.info("No open tabs available.")
        return None

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_BINARY_CANDIDATES: list[str] = [
    # Prefer Chromium for better compatibility.
    # IMPORTANT: Avoid snap versions - they ignore --user-data-dir!
    "/usr/bin/chromium",
    "/usr/bin/chromium-browser",
    "/usr/local/bin/chromium",
    "/opt/chromium/chromium",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
    "C:\\Program Files\\Chromium\\Application\\chrome.exe",
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/usr/bin/google-chrome",
    "/usr/bin/google-chrome-stable",
    "/opt/google/chrome/chrome",
    "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe",
    "C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe",
    "/snap/bin/chromium",
]


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser())


def _env_int(name: str, default: int, *, min_v: int = 1) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        return default
    return value if value >= min_v else default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw.strip())
    except ValueError:
        return default
    return value if value > 0 else default


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class BrowserConfig:
    binary_path: str
    profile_path: str
    cdp_port: int = 9222
    mode: str = "launch"
    extra_flags: list[str] = field(default_factory=list)
    headless: bool = False
    docker: bool = False
    window_size: str = "1280,800"
    initial_url: str = "https://example.com"
    grid_rows: int = 20
    grid_columns: int = 20
    grid_highlight_ms: int = 2000
    navigation_timeout: float = 60.0
    cdp_timeout: float = 5.0
    launch_timeout: float = 10.0
    console_max_entries: int = 1000

    @staticmethod
    def normalize_mode(raw: str | None) -> str:
        mode = (raw or "").strip().lower()
        if mode in {"attach", "connect", "external"}:
            return "attach"
        return "launch"

    @classmethod
    def detect_binary(cls) -> str:
        env_path = os.environ.get("MCP_BROWSER_BINARY")
        if env_path:
            return expand_path(env_path)
        for candidate in DEFAULT_BINARY_CANDIDATES:
            path = Path(candidate)
            if path.exists() and os.access(str(path), os.X_OK):
                return str(path)
        # Last resort: rely on PATH lookup
        return "google-chrome"

    @classmethod
    def from_env(cls) -> BrowserConfig:
        docker = bool(os.environ.get("DOCKER_CONTAINER"))
        flags_raw = os.environ.get("MCP_BROWSER_FLAGS", "")
        return cls(
            binary_path=cls.detect_binary(),
            profile_path=expand_path(os.environ.get("MCP_BROWSER_PROFILE", "~/.cache/tabgrid/browser-profile")),
            cdp_port=_env_int("MCP_BROWSER_PORT", 9222),
            mode=cls.normalize_mode(os.environ.get("MCP_BROWSER_MODE")),
            extra_flags=[flag.strip() for flag in flags_raw.split(",") if flag.strip()],
            # Containers have no display; headless is forced there.
            headless=docker or _env_flag("MCP_HEADLESS"),
            docker=docker,
            window_size=os.environ.get("MCP_WINDOW_SIZE", "1280,800").strip() or "1280,800",
            initial_url=os.environ.get("MCP_INITIAL_URL", "https://example.com").strip(),
            grid_rows=_env_int("MCP_GRID_ROWS", 20),
            grid_columns=_env_int("MCP_GRID_COLUMNS", 20),
            grid_highlight_ms=_env_int("MCP_GRID_HIGHLIGHT_MS", 2000, min_v=0),
            navigation_timeout=_env_float("MCP_NAV_TIMEOUT", 60.0),
            cdp_timeout=_env_float("MCP_CDP_TIMEOUT", 5.0),
            launch_timeout=_env_float("MCP_LAUNCH_TIMEOUT", 10.0),
            console_max_entries=_env_int("MCP_CONSOLE_MAX", 1000),
        )

    @property
    def http_endpoint(self) -> str:
        return f"http://127.0.0.1:{self.cdp_port}"

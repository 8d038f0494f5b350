from __future__ import annotations

import logging
import socket
import subprocess
import time
from contextlib import suppress
from dataclasses import dataclass
from typing import Any

from .config import BrowserConfig, expand_path
from .http_client import HttpClientError, http_get_json

logger = logging.getLogger("mcp.tabgrid.launcher")

DOCKER_FLAGS = ["--no-sandbox", "--disable-gpu", "--disable-dev-shm-usage", "--single-process", "--no-zygote"]


@dataclass
class LaunchResult:
    command: list[str]
    started: bool
    ready: bool
    message: str


class BrowserLauncher:
    def __init__(self, config: BrowserConfig | None = None) -> None:
        self.config = config or BrowserConfig.from_env()
        self.process: subprocess.Popen | None = None

    def _build_common_flags(self) -> list[str]:
        flags = [
            f"--remote-debugging-port={self.config.cdp_port}",
            f"--user-data-dir={expand_path(self.config.profile_path)}",
            "--remote-allow-origins=*",
            "--no-first-run",
            "--no-default-browser-check",
        ]
        if self.config.docker:
            flags.extend(DOCKER_FLAGS)
        if self.config.headless:
            flags.append("--headless=new")
        else:
            flags.append("--disable-infobars")
            flags.append(f"--window-size={self.config.window_size}")
        return flags

    def build_launch_command(self, extra: list[str] | None = None) -> list[str]:
        flags = self._build_common_flags() + self.config.extra_flags
        if extra:
            flags.extend(extra)
        return [self.config.binary_path, *flags]

    def _port_available(self, timeout: float = 0.2) -> bool:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.settimeout(timeout)
            try:
                return sock.connect_ex(("127.0.0.1", self.config.cdp_port)) != 0
            except OSError:
                return False

    def cdp_ready(self, timeout: float = 0.4) -> bool:
        try:
            version = http_get_json(f"{self.config.http_endpoint}/json/version", timeout=timeout)
        except HttpClientError:
            return False
        return isinstance(version, dict) and bool(version.get("webSocketDebuggerUrl"))

    def ensure_running(self, timeout: float | None = None) -> LaunchResult:
        """Attach to a listening browser or spawn one, waiting until CDP answers."""
        if self.cdp_ready():
            return LaunchResult([], False, True, "Browser already listening on CDP port")

        if self.config.mode == "attach":
            return LaunchResult([], False, False, f"No browser listening on port {self.config.cdp_port} (mode=attach)")

        if not self._port_available():
            return LaunchResult([], False, False, f"Port {self.config.cdp_port} already in use")

        cmd = self.build_launch_command()
        logger.info("Launching browser: %s", cmd[0])
        try:
            self.process = subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as exc:
            return LaunchResult(cmd, False, False, f"Failed to start browser: {exc}")

        deadline = time.time() + (timeout if timeout is not None else self.config.launch_timeout)
        while time.time() < deadline:
            if self.cdp_ready():
                logger.info("Browser launched.")
                return LaunchResult(cmd, True, True, "Browser launched")
            if self.process.poll() is not None:
                return LaunchResult(cmd, True, False, f"Browser exited with code {self.process.returncode}")
            time.sleep(0.1)
        return LaunchResult(cmd, True, False, "Browser launch timed out")

    def browser_ws_url(self) -> str:
        version = http_get_json(f"{self.config.http_endpoint}/json/version")
        ws_url = version.get("webSocketDebuggerUrl") if isinstance(version, dict) else None
        if not ws_url:
            raise HttpClientError("CDP browser WebSocket URL not found")
        return str(ws_url)

    def list_targets(self) -> list[dict[str, Any]]:
        try:
            targets = http_get_json(f"{self.config.http_endpoint}/json/list", timeout=1.0)
        except HttpClientError:
            return []
        return [t for t in targets if isinstance(t, dict)] if isinstance(targets, list) else []

    def reap(self) -> bool:
        """Forget a launched browser process that has exited; True if there was one."""
        proc = self.process
        if proc is None or proc.poll() is None:
            return False
        logger.info("Browser process exited with code %s", proc.returncode)
        self.process = None
        return True

    def shutdown(self, timeout: float = 5.0) -> None:
        """Terminate the browser process if this launcher spawned it."""
        proc = self.process
        self.process = None
        if proc is None or proc.poll() is not None:
            return
        proc.terminate()
        try:
            proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            with suppress(OSError):
                proc.kill()

"""
Lifecycle of the local KuGouMusicApi service

The Kugou source needs a KuGouMusicApi instance listening on ``api_url``.
This module only checks for it and, when asked to, starts it from a local
checkout with the configured command.
"""

import atexit
import shlex
import subprocess
import time
from pathlib import Path
from typing import Callable, Optional

import requests

from ..utils.logger import get_logger

HEALTH_TIMEOUT = 3
STARTUP_CHECK_INTERVAL = 1.0


class KugouApiService:
    """
    Check, start and stop the KuGouMusicApi service

    Args:
        api_url: Base URL the service listens on
        api_directory: Local checkout of KuGouMusicApi
        start_command: Command used to start the service inside api_directory
        startup_timeout: Seconds to wait for the service to answer after start
    """

    def __init__(
        self,
        api_url: str = "http://localhost:3000",
        api_directory: str = "KuGouMusicApi",
        start_command: str = "npm run dev",
        startup_timeout: int = 30,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.api_url = api_url.rstrip('/')
        self.api_directory = Path(api_directory).expanduser()
        self.start_command = start_command
        self.startup_timeout = startup_timeout
        self.session = session or requests.Session()
        self._sleep = sleep
        self._process: Optional[subprocess.Popen] = None
        self.logger = get_logger(__name__)

    @classmethod
    def from_settings(cls, settings) -> 'KugouApiService':
        return cls(
            api_url=settings.kugou.api_url,
            api_directory=settings.kugou.api_directory,
            start_command=settings.kugou.api_start_command,
            startup_timeout=settings.kugou.startup_timeout
        )

    def is_running(self) -> bool:
        """True when ``GET /`` answers 200 within three seconds"""
        try:
            response = self.session.get(f"{self.api_url}/", timeout=HEALTH_TIMEOUT)
        except requests.RequestException:
            return False
        return response.status_code == 200

    def start(self) -> bool:
        """
        Start the service and wait until it answers

        Returns:
            True when the service is up (including when it already was)
        """
        if self.is_running():
            self.logger.debug("KuGouMusicApi is already running")
            return True

        if not self.api_directory.is_dir():
            self.logger.console_error(f"❌ KuGouMusicApi directory not found: {self.api_directory}")
            self.logger.console_info(
                "   Clone it with: git clone https://github.com/MakcRe/KuGouMusicApi KuGouMusicApi"
            )
            return False

        if not (self.api_directory / "node_modules").exists():
            self.logger.console_warning("KuGouMusicApi dependencies are missing, run 'npm install' in its directory")

        self.logger.console_info("🚀 Starting KuGouMusicApi service...")
        try:
            self._process = subprocess.Popen(
                shlex.split(self.start_command),
                cwd=str(self.api_directory),
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL
            )
        except OSError as e:
            self.logger.console_error(f"❌ Failed to start KuGouMusicApi: {e}")
            return False

        atexit.register(self.stop)

        if self._wait_until_running():
            self.logger.console_info("✅ KuGouMusicApi service started")
            return True

        self.logger.console_error("❌ KuGouMusicApi did not come up in time")
        self.stop()
        return False

    def _wait_until_running(self) -> bool:
        deadline = time.monotonic() + self.startup_timeout
        while time.monotonic() < deadline:
            if self.is_running():
                return True
            if self._process is not None and self._process.poll() is not None:
                self.logger.error(f"KuGouMusicApi exited with code {self._process.returncode}")
                return False
            self._sleep(STARTUP_CHECK_INTERVAL)
        return False

    def stop(self) -> None:
        """Terminate a service started by this instance"""
        if self._process is None or self._process.poll() is not None:
            self._process = None
            return

        self.logger.debug("Stopping KuGouMusicApi service")
        self._process.terminate()
        try:
            self._process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            self._process.kill()
        self._process = None

    def ensure_running(self, auto_start: bool = False) -> bool:
        """
        Make sure the service answers

        Args:
            auto_start: Start the service when it is not running

        Returns:
            True when the service is reachable
        """
        if self.is_running():
            return True
        if auto_start:
            return self.start()
        self.logger.debug(f"KuGouMusicApi is not reachable at {self.api_url}")
        return False

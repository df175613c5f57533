"""
Kugou session storage and QR-code login

The Kugou catalog only answers search and song URL requests for a logged-in
account. This module keeps the session returned by the local KuGouMusicApi
service in a JSON file and runs the QR-code login flow against that service.

Session file layout (JSON)::

    {
      "userId": "...",
      "token": "...",
      "cookies": "...",
      "loginTime": 1700000000000,   # milliseconds since epoch
      "expiresIn": 604800000        # milliseconds, 7 days by default
    }

The camelCase keys match the files written by other KuGouMusicApi clients, so
an existing session file can be reused.

QR login flow:
1. ``GET /login/qr/key`` returns a key (``data.qrcode``)
2. ``GET /login/qr/create?key=...&qrimg=true`` returns the QR URL and a
   base64 PNG rendering
3. The user scans the code with the Kugou app
4. ``GET /login/qr/check?key=...`` is polled until the login is confirmed,
   the code expires, or the poll budget runs out
"""

import base64
import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import requests

from ..core.exceptions import KugouAuthError
from ..utils.logger import get_logger

DAY_MS = 24 * 60 * 60 * 1000

# /login/qr/check codes
QR_SCANNED_CODES = (2, 801)
QR_CONFIRMED_CODES = (4, 803)
QR_EXPIRED_CODES = (0, 805)


@dataclass
class KugouSession:
    """A stored Kugou login"""
    user_id: str
    token: str
    cookies: str
    login_time: int
    expires_in: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'KugouSession':
        return cls(
            user_id=str(data.get('userId', '')),
            token=str(data.get('token', '')),
            cookies=str(data.get('cookies', '')),
            login_time=int(data.get('loginTime', 0)),
            expires_in=int(data.get('expiresIn') or 0)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'userId': self.user_id,
            'token': self.token,
            'cookies': self.cookies,
            'loginTime': self.login_time,
            'expiresIn': self.expires_in,
        }

    def is_expired(self, now_ms: int, default_ttl_ms: int) -> bool:
        ttl = self.expires_in or default_ttl_ms
        return now_ms - self.login_time > ttl


class KugouAuthStore:
    """
    Kugou session file manager and QR login runner

    The resolver only asks ``is_logged_in()`` and reads ``cookies()``; the
    login itself is started from the CLI.

    Args:
        auth_file: Path of the JSON session file
        api_url: Base URL of the local KuGouMusicApi service
        ttl_days: Session lifetime when the file does not specify one
        poll_interval: Seconds between QR status checks
        max_checks: Number of QR status checks before giving up
        request_timeout: Timeout for login requests in seconds
        clock: Returns the current time in seconds (injectable for tests)
        sleep: Sleep function (injectable for tests)
    """

    def __init__(
        self,
        auth_file: Path,
        api_url: str = "http://localhost:3000",
        ttl_days: int = 7,
        poll_interval: float = 2.0,
        max_checks: int = 90,
        request_timeout: int = 15,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.auth_file = Path(auth_file)
        self.api_url = api_url.rstrip('/')
        self.ttl_ms = ttl_days * DAY_MS
        self.poll_interval = poll_interval
        self.max_checks = max_checks
        self.request_timeout = request_timeout
        self.session = session or requests.Session()
        self._clock = clock
        self._sleep = sleep
        self.logger = get_logger(__name__)

    @classmethod
    def from_settings(cls, settings) -> 'KugouAuthStore':
        return cls(
            auth_file=settings.get_kugou_auth_path(),
            api_url=settings.kugou.api_url,
            ttl_days=settings.kugou.session_ttl_days,
            poll_interval=settings.kugou.qr_poll_interval,
            max_checks=settings.kugou.qr_max_checks,
            request_timeout=settings.kugou.search_timeout
        )

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def load(self) -> Optional[KugouSession]:
        """
        Load the stored session

        Returns:
            The session, or None when the file is missing, unreadable or expired
        """
        if not self.auth_file.exists():
            return None

        try:
            with open(self.auth_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            stored = KugouSession.from_dict(data)
        except (OSError, ValueError, TypeError) as e:
            self.logger.warning(f"Failed to read Kugou session file {self.auth_file}: {e}")
            return None

        if stored.is_expired(self._now_ms(), self.ttl_ms):
            self.logger.console_warning("Kugou login has expired, please log in again")
            return None

        return stored

    def save(self, stored: KugouSession) -> None:
        """Write the session file with owner-only permissions"""
        self.auth_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.auth_file, 'w', encoding='utf-8') as f:
            json.dump(stored.to_dict(), f, indent=2)
        try:
            self.auth_file.chmod(0o600)
        except OSError:
            # Windows doesn't support chmod
            pass
        self.logger.debug(f"Kugou session saved to {self.auth_file}")

    def is_logged_in(self) -> bool:
        return self.load() is not None

    def cookies(self) -> str:
        """Cookie header value of the current session, empty when logged out"""
        stored = self.load()
        return stored.cookies if stored else ""

    def logout(self) -> bool:
        """
        Delete the session file

        Returns:
            True when the session is gone (including when there was none)
        """
        if not self.auth_file.exists():
            self.logger.console_info("No Kugou login found")
            return True
        try:
            self.auth_file.unlink()
        except OSError as e:
            self.logger.console_error(f"Failed to remove Kugou login: {e}")
            return False
        self.logger.console_info("Logged out of Kugou")
        return True

    def login(self, wait_for_scan: Optional[Callable[[], None]] = None) -> bool:
        """
        Run the QR-code login flow and store the resulting session

        Args:
            wait_for_scan: Called after the QR code is shown, before polling
                           starts (the CLI uses it to wait for Enter)

        Returns:
            True on success, False when the login failed or expired
        """
        try:
            key = self._request_qr_key()
            self._show_qr_code(key)
            if wait_for_scan:
                wait_for_scan()
            credentials = self._poll_qr_status(key)
        except (KugouAuthError, requests.RequestException) as e:
            self.logger.console_error(f"Kugou login failed: {e}")
            return False

        self.save(KugouSession(
            user_id=credentials.get('userId', ''),
            token=credentials.get('token', ''),
            cookies=credentials.get('cookies', ''),
            login_time=self._now_ms(),
            expires_in=self.ttl_ms
        ))
        self.logger.console_info("Kugou login successful")
        return True

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = self.session.get(
            f"{self.api_url}{path}", params=params, timeout=self.request_timeout
        )
        response.raise_for_status()
        return response.json()

    def _request_qr_key(self) -> str:
        payload = self._get('/login/qr/key')
        if payload.get('status') != 1:
            raise KugouAuthError("Failed to obtain a QR login key", details={'response': payload})
        key = (payload.get('data') or {}).get('qrcode')
        if not key:
            raise KugouAuthError("QR login key missing from response", details={'response': payload})
        return key

    def _show_qr_code(self, key: str) -> None:
        """
        Tell the user how to scan the login code

        The base64 rendering is saved next to the session file so it can be
        opened with any image viewer.
        """
        try:
            payload = self._get('/login/qr/create', params={'key': key, 'qrimg': 'true'})
        except (requests.RequestException, ValueError) as e:
            self.logger.console_warning(f"Could not generate QR code ({e}); enter this key in the Kugou app: {key}")
            return

        data = payload.get('data') or {}
        qr_url = data.get('url', '')
        image = data.get('base64', '')

        self.logger.console_info("Scan the QR code with the Kugou app to log in")
        if qr_url:
            self.logger.console_info(f"   QR URL: {qr_url}")
        self.logger.console_info(f"   Key: {key}")

        if image:
            image_path = self.auth_file.parent / "kugou-qrcode.png"
            try:
                encoded = image.split(',', 1)[1] if image.startswith('data:') else image
                image_path.parent.mkdir(parents=True, exist_ok=True)
                image_path.write_bytes(base64.b64decode(encoded))
                self.logger.console_info(f"   QR image saved to: {image_path}")
            except (OSError, ValueError) as e:
                self.logger.warning(f"Failed to save QR image: {e}")

    def _poll_qr_status(self, key: str) -> Dict[str, str]:
        """
        Poll the QR status endpoint until the login completes

        Returns:
            Dictionary with userId, token and cookies

        Raises:
            KugouAuthError: When the code expires or the poll budget runs out
        """
        announced_scan = False
        for _ in range(self.max_checks):
            try:
                payload = self._get('/login/qr/check', params={'key': key})
            except (requests.RequestException, ValueError) as e:
                self.logger.debug(f"QR status check failed: {e}")
                self._sleep(self.poll_interval)
                continue

            code = payload.get('code')
            data = payload.get('data')
            if code is None and isinstance(data, dict) and 'status' in data:
                # Nested state: 1 waiting, 2 scanned, 4 confirmed, 0 expired
                code = data.get('status')
                confirmed = code in QR_CONFIRMED_CODES
            else:
                confirmed = code in QR_CONFIRMED_CODES or payload.get('status') == 1

            if confirmed:
                user = payload.get('data') or payload
                return {
                    'userId': str(user.get('userId') or user.get('user_id') or user.get('userid') or ''),
                    'token': str(user.get('token') or user.get('access_token') or ''),
                    'cookies': str(user.get('cookie') or user.get('cookies') or ''),
                }
            if code in QR_EXPIRED_CODES:
                raise KugouAuthError("QR code expired, please try again")
            if code in QR_SCANNED_CODES and not announced_scan:
                self.logger.console_info("QR code scanned, waiting for confirmation...")
                announced_scan = True

            self._sleep(self.poll_interval)

        raise KugouAuthError("Timed out waiting for QR login")

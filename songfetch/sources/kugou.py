"""
Kugou regional catalog source

Talks to a locally running KuGouMusicApi service (https://github.com/MakcRe/KuGouMusicApi)
using the cookies of a stored QR login. Three operations are exposed:

- ``search(keyword)``: raw candidates for one query, in upstream order
- ``get_play_url(file_hash)``: a playable URL for the chosen candidate
- ``download(url, output_path, file_hash)``: stream the bytes to disk

Choosing which candidate to fetch is not done here; see
songfetch.resolver.orchestrator.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import requests

from ..core.exceptions import AccessRestrictedError, NotFoundError, TransientError
from ..core.models import CandidateRecord, ProviderId
from ..utils.logger import get_logger, log_performance
from .normalize import extract_play_url, is_accepted_response, normalize_candidates
from .transport import BROWSER_USER_AGENT, default_strategies, stream_to_file

SEARCH_ENDPOINTS = ('/search', '/search/song', '/cloudsearch')
SONG_URL_ENDPOINTS = ('/song/url', '/song/url/new')

# /song/url status values
STATUS_UNAVAILABLE = 0
STATUS_OK = 1
STATUS_RESTRICTED = 2

# Song URLs always serve MP3, whatever output format is configured
AUDIO_EXTENSION = ".mp3"


class KugouSource:
    """
    Kugou catalog adapter

    Args:
        api_url: Base URL of the KuGouMusicApi service
        auth_store: Object with a ``cookies()`` method (KugouAuthStore)
        search_timeout: Timeout for API calls in seconds
        page_size: Number of results requested per search
        download_timeout: Timeout for audio byte retrieval in seconds
        session: requests session, created when omitted
    """

    provider = ProviderId.KUGOU

    def __init__(
        self,
        api_url: str,
        auth_store,
        search_timeout: int = 15,
        page_size: int = 20,
        download_timeout: int = 60,
        session: Optional[requests.Session] = None
    ):
        self.api_url = api_url.rstrip('/')
        self.auth_store = auth_store
        self.search_timeout = search_timeout
        self.page_size = page_size
        self.download_timeout = download_timeout
        self.session = session or requests.Session()
        self.logger = get_logger(__name__)

    @classmethod
    def from_settings(cls, settings, auth_store) -> 'KugouSource':
        return cls(
            api_url=settings.kugou.api_url,
            auth_store=auth_store,
            search_timeout=settings.kugou.search_timeout,
            page_size=settings.kugou.page_size,
            download_timeout=settings.kugou.download_timeout
        )

    def _cookies(self) -> str:
        cookies = self.auth_store.cookies()
        if not cookies:
            raise TransientError("Not logged in to Kugou", provider=self.provider)
        return cookies

    @log_performance
    def search(self, keyword: str) -> List[CandidateRecord]:
        """
        Search the catalog

        Endpoints are tried in order until one gives an accepted answer. An
        accepted answer without songs is an empty result, not an error.

        Args:
            keyword: Search query

        Returns:
            Candidates in upstream order

        Raises:
            TransientError: When not logged in or no endpoint answered
        """
        headers = {
            'Cookie': self._cookies(),
            'User-Agent': BROWSER_USER_AGENT,
        }
        params = {
            'keywords': keyword,
            'keyword': keyword,
            'page': 1,
            'pagesize': self.page_size,
            'limit': self.page_size,
        }

        for endpoint in SEARCH_ENDPOINTS:
            try:
                response = self.session.get(
                    f"{self.api_url}{endpoint}", params=params,
                    headers=headers, timeout=self.search_timeout
                )
                payload = response.json()
            except (requests.RequestException, ValueError) as e:
                self.logger.debug(f"Kugou search endpoint {endpoint} failed: {e}")
                continue

            if not is_accepted_response(payload):
                self.logger.debug(f"Kugou search endpoint {endpoint} gave no usable answer")
                continue

            candidates = normalize_candidates(payload)
            self.logger.debug(f"Kugou search '{keyword}' via {endpoint}: {len(candidates)} candidates")
            return candidates

        raise TransientError(
            "All Kugou search endpoints failed",
            details={'keyword': keyword, 'endpoints': list(SEARCH_ENDPOINTS)},
            provider=self.provider
        )

    def get_play_url(self, file_hash: str) -> str:
        """
        Resolve a candidate hash to a playable URL

        Raises:
            AccessRestrictedError: Paid-only or region-locked track (status 2)
            NotFoundError: Track unavailable (status 0) or no URL in any answer
            TransientError: Network failure or unreadable response
        """
        headers = {'Cookie': self._cookies()}

        for endpoint in SONG_URL_ENDPOINTS:
            try:
                response = self.session.get(
                    f"{self.api_url}{endpoint}", params={'hash': file_hash},
                    headers=headers, timeout=self.search_timeout
                )
                payload: Dict[str, Any] = response.json()
            except (requests.RequestException, ValueError) as e:
                raise TransientError(
                    f"Failed to get Kugou download URL: {e}",
                    details={'hash': file_hash, 'endpoint': endpoint, 'exception': e},
                    provider=self.provider
                ) from e

            status = payload.get('status') if isinstance(payload, dict) else None
            if status == STATUS_RESTRICTED:
                raise AccessRestrictedError(
                    "AccessRestricted",
                    details={'hash': file_hash, 'endpoint': endpoint},
                    provider=self.provider
                )
            if status == STATUS_UNAVAILABLE:
                raise NotFoundError(
                    "Track is not available on Kugou",
                    details={'hash': file_hash, 'endpoint': endpoint},
                    provider=self.provider
                )
            if status == STATUS_OK:
                url = extract_play_url(payload)
                if url:
                    return url

            self.logger.debug(f"{endpoint} returned no URL for {file_hash} (status {status})")

        raise NotFoundError(
            "No download URL returned for track",
            details={'hash': file_hash},
            provider=self.provider
        )

    def download(self, url: str, output_path: Union[str, Path], file_hash: str = "") -> int:
        """
        Stream audio bytes to ``output_path``

        Returns:
            Number of bytes written

        Raises:
            AccessRestrictedError: The CDN refused every retrieval strategy
            TransientError: On any other transport or filesystem failure
        """
        return stream_to_file(
            url,
            output_path,
            default_strategies(file_hash),
            session=self.session,
            timeout=self.download_timeout
        )

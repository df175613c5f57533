"""
Spotify API client for track, album and playlist metadata

Spotify is only used as the metadata provider: it supplies the (artist, title)
pairs to resolve and the canonical tags. Public catalog data is enough, so the
client uses the client-credentials flow and never asks the user to log in.

Pagination relies on spotipy's ``next()`` helper. Requests are throttled to at
most ten per second and a 429 answer is retried once after ``Retry-After``.
"""

import time
from typing import Any, List, Optional

import spotipy
from spotipy.exceptions import SpotifyException
from spotipy.oauth2 import SpotifyClientCredentials, SpotifyOauthError

from ..core.exceptions import SpotifyError
from ..utils.logger import get_logger
from ..utils.validation import parse_spotify_url
from .models import SpotifyAlbum, SpotifyTrack

BATCH_SIZE = 50


class SpotifyClient:
    """
    Read-only Spotify Web API client

    Args:
        client_id: Spotify application client ID
        client_secret: Spotify application client secret
        spotify: Pre-built spotipy client (used by tests)
    """

    def __init__(self, client_id: str = "", client_secret: str = "",
                 spotify: Optional[spotipy.Spotify] = None):
        self.client_id = client_id
        self.client_secret = client_secret
        self.logger = get_logger(__name__)
        self._client: Optional[spotipy.Spotify] = spotify

        self.last_request_time = 0.0
        self.min_request_interval = 0.1  # 10 requests/second

    @classmethod
    def from_settings(cls, settings) -> 'SpotifyClient':
        return cls(client_id=settings.spotify.client_id, client_secret=settings.spotify.client_secret)

    @property
    def client(self) -> spotipy.Spotify:
        """Lazily authenticated spotipy client"""
        if self._client is None:
            if not self.client_id or not self.client_secret:
                raise SpotifyError(
                    "Spotify client_id and client_secret are not configured",
                    is_auth_error=True
                )
            auth_manager = SpotifyClientCredentials(
                client_id=self.client_id,
                client_secret=self.client_secret
            )
            self._client = spotipy.Spotify(auth_manager=auth_manager, requests_timeout=15, retries=0)
        return self._client

    def _rate_limit(self) -> None:
        time_since_last = time.time() - self.last_request_time
        if time_since_last < self.min_request_interval:
            time.sleep(self.min_request_interval - time_since_last)
        self.last_request_time = time.time()

    def _make_request(self, func, *args, **kwargs) -> Any:
        """
        Rate-limited API call with Spotify errors mapped to SpotifyError

        Raises:
            SpotifyError: On authentication failures, unknown IDs and other API errors
        """
        self._rate_limit()
        try:
            try:
                return func(*args, **kwargs)
            except SpotifyException as e:
                if e.http_status != 429:
                    raise
                retry_after = int((e.headers or {}).get('Retry-After', 1))
                self.logger.console_warning(f"Spotify rate limit hit, waiting {retry_after} seconds...")
                time.sleep(retry_after)
                self._rate_limit()
                return func(*args, **kwargs)
        except SpotifyOauthError as e:
            raise SpotifyError(f"Spotify authentication failed: {e}", is_auth_error=True) from e
        except SpotifyException as e:
            raise SpotifyError(
                f"Spotify API error ({e.http_status}): {e.msg}",
                details={'status': e.http_status},
                is_auth_error=e.http_status in (400, 401, 403),
                is_rate_limit=e.http_status == 429
            ) from e

    def get_track(self, track_id: str) -> SpotifyTrack:
        data = self._make_request(self.client.track, track_id)
        return SpotifyTrack.from_spotify_data(data)

    def get_track_meta(self, track_id: str):
        """Canonical TrackMeta for one track ID"""
        return self.get_track(track_id).to_track_meta()

    def get_tracks(self, track_ids: List[str]) -> List[SpotifyTrack]:
        """Full track objects in batches of 50, skipping IDs Spotify no longer knows"""
        tracks = []
        for start in range(0, len(track_ids), BATCH_SIZE):
            batch = track_ids[start:start + BATCH_SIZE]
            results = self._make_request(self.client.tracks, batch)
            for data in results.get('tracks', []):
                if data:
                    tracks.append(SpotifyTrack.from_spotify_data(data))
        return tracks

    def get_album_tracks(self, album_id: str) -> List[SpotifyTrack]:
        """
        All tracks of an album, in album order

        Album listings return simplified tracks without ISRCs, so full track
        objects are fetched in batches afterwards.
        """
        album_data = self._make_request(self.client.album, album_id)
        album = SpotifyAlbum.from_spotify_data(album_data)

        items = []
        page = album_data.get('tracks') or {}
        while page:
            items.extend(page.get('items', []))
            page = self._make_request(self.client.next, page) if page.get('next') else None

        track_ids = [item['id'] for item in items if item.get('id')]
        full_tracks = {track.id: track for track in self.get_tracks(track_ids)}

        tracks = []
        for item in items:
            track = full_tracks.get(item.get('id'))
            if track is None:
                track = SpotifyTrack.from_spotify_data(item, album=album)
            tracks.append(track)

        self.logger.info(f"Album {album.name}: {len(tracks)} tracks")
        return tracks

    def get_playlist_tracks(self, playlist_id: str) -> List[SpotifyTrack]:
        """All downloadable tracks of a playlist; local and removed tracks are skipped"""
        tracks = []
        results = self._make_request(self.client.playlist_items, playlist_id, additional_types=('track',))
        position = 0

        while results:
            for item in results.get('items', []):
                position += 1
                track_data = item.get('track')
                if not track_data or not track_data.get('id') or track_data.get('is_local'):
                    self.logger.warning(f"Skipping unavailable track at position {position}")
                    continue
                tracks.append(SpotifyTrack.from_spotify_data(track_data))
            results = self._make_request(self.client.next, results) if results.get('next') else None

        self.logger.info(f"Playlist {playlist_id}: {len(tracks)} tracks")
        return tracks

    def get_collection_name(self, url: str) -> str:
        """Display name of the album or playlist behind ``url`` (the track title for tracks)"""
        kind, resource_id = parse_spotify_url(url)
        if kind == 'playlist':
            data = self._make_request(self.client.playlist, resource_id, fields='name')
        elif kind == 'album':
            data = self._make_request(self.client.album, resource_id)
        else:
            data = self._make_request(self.client.track, resource_id)
        return data.get('name') or resource_id

    def get_tracks_for_url(self, url: str) -> List[SpotifyTrack]:
        """
        Resolve a track, album or playlist URL into its tracks

        Raises:
            ValueError: The URL is not a Spotify track, album or playlist
            SpotifyError: The API call failed
        """
        kind, resource_id = parse_spotify_url(url)
        if kind == 'track':
            return [self.get_track(resource_id)]
        if kind == 'album':
            return self.get_album_tracks(resource_id)
        return self.get_playlist_tracks(resource_id)

"""
Spotify data models

Dataclasses built from Spotify Web API payloads. Only the fields the download
pipeline needs are kept; ``SpotifyTrack.to_track_meta()`` converts a track
into the provider-neutral TrackMeta used by the resolver and the tagger.

Album track listings (``/albums/{id}/tracks``) return simplified track
objects without an ``album`` key, so ``SpotifyTrack.from_spotify_data``
accepts the album separately.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.models import TrackMeta


@dataclass
class SpotifyArtist:
    """
    Artist reference as embedded in track and album objects

    Attributes:
        id: Spotify artist ID
        name: Artist display name
        uri: Spotify URI (spotify:artist:id)
    """
    id: str
    name: str
    uri: Optional[str] = None

    @classmethod
    def from_spotify_data(cls, data: Dict[str, Any]) -> 'SpotifyArtist':
        return cls(
            id=data.get('id') or '',
            name=data.get('name') or '',
            uri=data.get('uri')
        )


@dataclass
class SpotifyAlbum:
    """
    Album context of a track

    Attributes:
        id: Spotify album ID
        name: Album title
        album_type: album, single or compilation
        total_tracks: Number of tracks on the album
        release_date: Release date, precision varies (YYYY, YYYY-MM, YYYY-MM-DD)
        artists: Album artists
        images: Artwork in several sizes, dictionaries with url/width/height
    """
    id: str
    name: str
    album_type: str = "album"
    total_tracks: int = 0
    release_date: str = ""
    artists: List[SpotifyArtist] = field(default_factory=list)
    images: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_spotify_data(cls, data: Dict[str, Any]) -> 'SpotifyAlbum':
        return cls(
            id=data.get('id') or '',
            name=data.get('name') or '',
            album_type=data.get('album_type') or 'album',
            total_tracks=data.get('total_tracks') or 0,
            release_date=data.get('release_date') or '',
            artists=[SpotifyArtist.from_spotify_data(artist) for artist in data.get('artists', [])],
            images=data.get('images') or []
        )

    def get_best_image(self, min_size: int = 300) -> Optional[str]:
        """
        Pick the artwork URL to embed

        Prefers the largest image at least ``min_size`` pixels wide or high,
        otherwise the largest image available.

        Returns:
            Image URL, or None when the album has no artwork
        """
        if not self.images:
            return None

        def area(img: Dict[str, Any]) -> int:
            return (img.get('width') or 0) * (img.get('height') or 0)

        suitable = [img for img in self.images
                    if (img.get('width') or 0) >= min_size or (img.get('height') or 0) >= min_size]
        return max(suitable or self.images, key=area)['url']

    @property
    def all_images(self) -> List[str]:
        """Artwork URLs, largest first"""
        ordered = sorted(self.images, key=lambda img: (img.get('width') or 0) * (img.get('height') or 0), reverse=True)
        return [img['url'] for img in ordered if img.get('url')]


@dataclass
class SpotifyTrack:
    """
    Track metadata used for resolution and tagging

    Attributes:
        id: Spotify track ID
        name: Track title
        artists: Credited artists, primary first
        album: Album context
        duration_ms: Length in milliseconds
        track_number: Position on the album
        disc_number: Disc number (1 for single-disc releases)
        external_ids: External identifiers (``isrc`` when known)
        external_urls: Links, ``spotify`` is the web URL
        is_local: Local file uploaded by the playlist owner (not downloadable)
    """
    id: str
    name: str
    artists: List[SpotifyArtist]
    album: SpotifyAlbum
    duration_ms: int = 0
    track_number: int = 0
    disc_number: int = 1
    external_ids: Dict[str, str] = field(default_factory=dict)
    external_urls: Dict[str, str] = field(default_factory=dict)
    is_local: bool = False

    @classmethod
    def from_spotify_data(cls, data: Dict[str, Any], album: Optional[SpotifyAlbum] = None) -> 'SpotifyTrack':
        """
        Build a track from a track object or a playlist item

        Args:
            data: Track object, or playlist item with the track under ``track``
            album: Album to use when the payload has none (album listings)
        """
        track_data = data.get('track') or data

        if album is None:
            album = SpotifyAlbum.from_spotify_data(track_data.get('album') or {})

        return cls(
            id=track_data.get('id') or '',
            name=track_data.get('name') or '',
            artists=[SpotifyArtist.from_spotify_data(artist) for artist in track_data.get('artists', [])],
            album=album,
            duration_ms=track_data.get('duration_ms') or 0,
            track_number=track_data.get('track_number') or 0,
            disc_number=track_data.get('disc_number') or 1,
            external_ids=track_data.get('external_ids') or {},
            external_urls=track_data.get('external_urls') or {},
            is_local=track_data.get('is_local', False)
        )

    @property
    def primary_artist(self) -> str:
        return self.artists[0].name if self.artists else "Unknown Artist"

    @property
    def all_artists(self) -> str:
        """Comma-separated names of all credited artists"""
        return ", ".join(artist.name for artist in self.artists)

    @property
    def isrc(self) -> Optional[str]:
        return self.external_ids.get('isrc')

    @property
    def duration_str(self) -> str:
        total_seconds = self.duration_ms // 1000
        return f"{total_seconds // 60}:{total_seconds % 60:02d}"

    def to_track_meta(self) -> TrackMeta:
        """Provider-neutral metadata for the resolver, reconciler and tagger"""
        return TrackMeta(
            title=self.name,
            artist=self.all_artists,
            album=self.album.name,
            album_artist=self.album.artists[0].name if self.album.artists else None,
            isrc=self.isrc,
            track_number=self.track_number or None,
            total_tracks=self.album.total_tracks or None,
            disc_number=self.disc_number or None,
            release_date=self.album.release_date or None,
            images=self.album.all_images,
            source_url=self.external_urls.get('spotify') or (f"https://open.spotify.com/track/{self.id}" if self.id else None)
        )

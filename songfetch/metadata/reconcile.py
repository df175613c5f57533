"""
Tag reconciliation

Spotify often lists Chinese, Japanese or Korean tracks under romanized or
English names. When the Kugou catalog identified the track, its names are the
original-language ones and are preferred. Otherwise MusicBrainz is asked, by
ISRC first and then by artist and title.

``MetadataReconciler.propose`` returns only the fields that would change, or
None when the canonical tags should stay as they are. It never raises: a
MusicBrainz outage just means no proposal.
"""

from typing import Any, Dict, List, Optional

import musicbrainzngs

from ..core.models import DiscoveredMetadata, TagProposal, TrackMeta
from ..utils.logger import get_logger

logger = get_logger(__name__)


def extract_reference_fields(recording: Dict[str, Any]) -> Dict[str, str]:
    """
    Pull title, artist and album out of a MusicBrainz recording

    Artists are the credited names joined with ", ". The album is the first
    release with status "Official", or the first release when none is.
    """
    title = (recording.get('title') or '').strip()

    names = []
    for credit in recording.get('artist-credit') or []:
        # Join phrases such as " feat. " appear as plain strings between credits
        if not isinstance(credit, dict):
            continue
        name = credit.get('name') or (credit.get('artist') or {}).get('name')
        if name:
            names.append(name.strip())
    artist = ", ".join(names)

    album = ''
    releases = recording.get('release-list') or []
    official = [r for r in releases if (r.get('status') or '').lower() == 'official']
    chosen = official[0] if official else (releases[0] if releases else None)
    if chosen:
        album = (chosen.get('title') or '').strip()

    return {'title': title, 'artist': artist, 'album': album, 'album_artist': artist}


def _diff(canonical: TrackMeta, candidate: Dict[str, str]) -> Optional[TagProposal]:
    """Fields of ``candidate`` that are non-empty and differ from ``canonical`` (trimmed, case-sensitive)"""
    baseline = {
        'title': canonical.title,
        'artist': canonical.artist,
        'album': canonical.album,
        'album_artist': canonical.album_artist or canonical.artist,
    }

    changes = {}
    for field_name, value in candidate.items():
        value = (value or '').strip()
        if value and value != (baseline.get(field_name) or '').strip():
            changes[field_name] = value

    if not changes:
        return None
    return TagProposal(**changes)


class MusicBrainzCatalog:
    """
    Recording lookups against the MusicBrainz web service

    Args:
        app_name: Application name for the MusicBrainz user agent
        app_version: Application version for the user agent
        contact: Contact URL or e-mail for the user agent
        client: Module-like object exposing the musicbrainzngs API
                (injectable for tests)
    """

    def __init__(self, app_name: str = "songfetch", app_version: str = "0.4.0",
                 contact: str = "", client=None):
        self.client = client or musicbrainzngs
        self.client.set_useragent(app_name, app_version, contact or None)

    @classmethod
    def from_settings(cls, settings) -> 'MusicBrainzCatalog':
        return cls(
            app_name=settings.musicbrainz.app_name,
            app_version=settings.musicbrainz.app_version,
            contact=settings.musicbrainz.contact
        )

    def _recordings(self, description: str, query, *args, **kwargs) -> List[Dict[str, Any]]:
        """Run one query; a catalog error counts as no result so the next query still runs"""
        try:
            result = query(*args, **kwargs)
        except musicbrainzngs.ResponseError as e:
            logger.debug(f"MusicBrainz {description}: {e}")
            return []
        except musicbrainzngs.MusicBrainzError as e:
            logger.warning(f"MusicBrainz {description} failed: {e}")
            return []
        return result.get('recording-list') or []

    def _isrc_lookup(self, isrc: str) -> Dict[str, Any]:
        result = self.client.get_recordings_by_isrc(isrc, includes=['artists', 'releases'])
        return result.get('isrc') or {}

    def by_isrc(self, isrc: str) -> List[Dict[str, Any]]:
        """Direct ISRC lookup, then an ``isrc:`` search"""
        recordings = self._recordings(f"ISRC lookup {isrc}", self._isrc_lookup, isrc)
        if recordings:
            return recordings
        return self._recordings(f"ISRC search {isrc}", self.client.search_recordings, isrc=isrc, limit=5)

    def by_text(self, artist: str, title: str) -> List[Dict[str, Any]]:
        return self._recordings(
            f"search {artist} - {title}",
            self.client.search_recordings, artist=artist, recording=title, limit=5
        )


class MetadataReconciler:
    """
    Propose corrected tags for a downloaded track

    Args:
        catalog: MusicBrainzCatalog, None to skip the reference lookup
    """

    def __init__(self, catalog: Optional[MusicBrainzCatalog] = None):
        self.catalog = catalog

    def propose(self, canonical: TrackMeta,
                discovered: Optional[DiscoveredMetadata] = None) -> Optional[TagProposal]:
        """
        Args:
            canonical: Spotify metadata of the track
            discovered: Names found on Kugou while downloading, if any

        Returns:
            TagProposal with the differing fields, or None
        """
        if discovered is not None:
            proposal = _diff(canonical, {
                'title': discovered.title,
                'artist': discovered.artist,
                'album': discovered.album,
            })
            if proposal is not None:
                logger.debug(f"Using Kugou names for {canonical.artist} - {canonical.title}: {proposal.as_dict()}")
                return proposal

        if self.catalog is None:
            return None

        recording = self._lookup(canonical)
        if recording is None:
            return None

        return _diff(canonical, extract_reference_fields(recording))

    def _lookup(self, canonical: TrackMeta) -> Optional[Dict[str, Any]]:
        recordings = self.catalog.by_isrc(canonical.isrc) if canonical.isrc else []
        if not recordings:
            recordings = self.catalog.by_text(canonical.artist, canonical.title)
        return recordings[0] if recordings else None

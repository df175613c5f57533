"""
Shared data models for the resolution engine

These dataclasses are the contract between the source adapters, the scorer,
the orchestrator and the metadata reconciliation step. Everything that crosses
a component boundary is one of the types below; raw upstream payloads never
leave the adapter that parsed them.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional


class ProviderId(Enum):
    """
    Audio source identifiers

    YOUTUBE is the rank-1 general source, KUGOU the rank-2 regional catalog.
    The enum value doubles as the configuration / CLI spelling.
    """
    YOUTUBE = "youtube"
    KUGOU = "kugou"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional['ProviderId']:
        """Parse a config/CLI string, returning None for empty input"""
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown provider: {value} (expected one of: youtube, kugou)")


_DISPLAY_NAMES = {
    ProviderId.YOUTUBE: "YouTube Music",
    ProviderId.KUGOU: "Kugou Music",
}

# Rank aliases used by the resolution policy
PRIMARY = ProviderId.YOUTUBE
SECONDARY = ProviderId.KUGOU


class FailureKind(Enum):
    """Failure taxonomy reported in DownloadResult.failure"""
    NOT_FOUND = "NotFound"
    ACCESS_RESTRICTED = "AccessRestricted"
    TRANSIENT = "Transient"
    EXHAUSTED = "Exhausted"


@dataclass(frozen=True)
class WantedTrack:
    """The (artist, title) pair a resolution attempt is looking for"""
    artist: str
    title: str

    def __str__(self) -> str:
        return f"{self.artist} - {self.title}"


@dataclass(frozen=True)
class CandidateRecord:
    """
    One search hit from a source, in a fixed shape

    Produced by the catalog normalizer from loosely typed payloads. Missing
    values are empty strings / zero rather than None so the scorer never has
    to guard against them.

    Attributes:
        source_id: Opaque identifier understood by the producing source
                   (the file hash for Kugou)
        song_name: Track title as listed by the source
        singer_name: Artist name(s) as listed by the source
        album_name: Album title, may be empty
        duration: Length in seconds, 0 when unknown
        file_size: Size in bytes, 0 when unknown
    """
    source_id: str
    song_name: str
    singer_name: str
    album_name: str = ""
    duration: int = 0
    file_size: int = 0


@dataclass(frozen=True)
class ScoredCandidate:
    """A CandidateRecord paired with its match score"""
    candidate: CandidateRecord
    match_score: int

    @property
    def source_id(self) -> str:
        return self.candidate.source_id

    @property
    def song_name(self) -> str:
        return self.candidate.song_name

    @property
    def singer_name(self) -> str:
        return self.candidate.singer_name

    @property
    def album_name(self) -> str:
        return self.candidate.album_name


@dataclass(frozen=True)
class DiscoveredMetadata:
    """Names surfaced by a regional catalog candidate while resolving a track"""
    title: str
    artist: str
    album: str = ""


@dataclass(frozen=True)
class AttemptRecord:
    """One provider attempt as seen by the orchestrator"""
    provider: ProviderId
    attempt: int
    failure: Optional[FailureKind] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.failure is None


@dataclass
class DownloadResult:
    """
    Uniform outcome of DownloadOrchestrator.download_audio

    The orchestrator never raises; every failure ends up in this record.

    Attributes:
        success: True when audio bytes were written to the output path
        provider: Provider that produced the bytes, or the preferred provider
                  when nothing succeeded
        provider_display_name: Human readable provider name
        error: Last error message when success is False
        failure: Failure kind of the overall call (Exhausted when every
                 provider and attempt was consumed)
        discovered_metadata: Names from the regional catalog candidate, kept
                             even when its audio could not be retrieved
        attempts: Every attempt made, in order
        file_path: Final output path on success
        file_size: Size of the written file in bytes
    """
    success: bool
    provider: ProviderId
    provider_display_name: Optional[str] = None
    error: Optional[str] = None
    failure: Optional[FailureKind] = None
    discovered_metadata: Optional[DiscoveredMetadata] = None
    attempts: List[AttemptRecord] = field(default_factory=list)
    file_path: Optional[str] = None
    file_size: Optional[int] = None

    def attempts_for(self, provider: ProviderId) -> List[AttemptRecord]:
        """Attempts made against a single provider"""
        return [record for record in self.attempts if record.provider is provider]


@dataclass(frozen=True)
class TrackMeta:
    """
    Canonical track metadata from the primary metadata provider

    Attributes:
        title: Track title
        artist: Artist names joined with ", "
        album: Album title
        album_artist: First album artist, None when unknown
        isrc: International Standard Recording Code, when Spotify has one
        track_number: Position on the album
        total_tracks: Album track count
        disc_number: Disc number for multi-disc releases
        release_date: Release date string (YYYY, YYYY-MM or YYYY-MM-DD)
        images: Album artwork URLs, best first
        source_url: Spotify URL of the track, used in the failed-tracks log
    """
    title: str
    artist: str
    album: str = ""
    album_artist: Optional[str] = None
    isrc: Optional[str] = None
    track_number: Optional[int] = None
    total_tracks: Optional[int] = None
    disc_number: Optional[int] = None
    release_date: Optional[str] = None
    images: List[str] = field(default_factory=list)
    source_url: Optional[str] = None

    @property
    def wanted(self) -> WantedTrack:
        return WantedTrack(artist=self.artist, title=self.title)

    @property
    def year(self) -> Optional[str]:
        return self.release_date[:4] if self.release_date else None


@dataclass(frozen=True)
class TagProposal:
    """
    Partial tag correction

    Only fields that differ from the canonical metadata are set; None means
    "keep the original value".
    """
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    album_artist: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def as_dict(self) -> Dict[str, Any]:
        """Populated fields only"""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

"""
Core types shared by every songfetch package: data models and exceptions
"""

from .models import (
    ProviderId,
    PRIMARY,
    SECONDARY,
    FailureKind,
    WantedTrack,
    CandidateRecord,
    ScoredCandidate,
    DiscoveredMetadata,
    AttemptRecord,
    DownloadResult,
    TrackMeta,
    TagProposal,
)
from .exceptions import (
    SongfetchError,
    ConfigError,
    SpotifyError,
    KugouAuthError,
    MetadataError,
    ProviderError,
    NotFoundError,
    AccessRestrictedError,
    TransientError,
)

__all__ = [
    'ProviderId',
    'PRIMARY',
    'SECONDARY',
    'FailureKind',
    'WantedTrack',
    'CandidateRecord',
    'ScoredCandidate',
    'DiscoveredMetadata',
    'AttemptRecord',
    'DownloadResult',
    'TrackMeta',
    'TagProposal',
    'SongfetchError',
    'ConfigError',
    'SpotifyError',
    'KugouAuthError',
    'MetadataError',
    'ProviderError',
    'NotFoundError',
    'AccessRestrictedError',
    'TransientError',
]

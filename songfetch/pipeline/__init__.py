"""
Batch download pipeline
"""

from .stats import DownloadStats
from .processor import (
    CollectionDownloader,
    FailedTrackLog,
    TrackOutcome,
    TrackProcessor,
    TrackStatus,
    build_file_name,
    staging_path_for,
)

__all__ = [
    'DownloadStats',
    'CollectionDownloader',
    'FailedTrackLog',
    'TrackOutcome',
    'TrackProcessor',
    'TrackStatus',
    'build_file_name',
    'staging_path_for',
]

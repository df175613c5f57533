"""
Aggregate counters for a batch run
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from ..core.models import ProviderId


@dataclass
class DownloadStats:
    """
    Statistics for one batch download

    Mutated by the collection downloader between tracks only.

    Attributes:
        total_tracks: Tracks in the batch
        downloaded_tracks: Tracks downloaded in this run
        skipped_tracks: Tracks already present on disk
        failed_tracks: Tracks that could not be downloaded
        retagged_tracks: Downloads whose tags were corrected by reconciliation
        by_provider: Successful downloads per provider
        start_time: Batch start
        end_time: Batch end
        total_size_bytes: Bytes written by successful downloads
        interrupted: True when the run was stopped with Ctrl-C
    """
    total_tracks: int = 0
    downloaded_tracks: int = 0
    skipped_tracks: int = 0
    failed_tracks: int = 0
    retagged_tracks: int = 0
    by_provider: Dict[ProviderId, int] = field(default_factory=dict)

    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    total_size_bytes: int = 0
    interrupted: bool = False

    def record_success(self, provider: ProviderId, size_bytes: Optional[int] = None) -> None:
        self.downloaded_tracks += 1
        self.by_provider[provider] = self.by_provider.get(provider, 0) + 1
        self.total_size_bytes += size_bytes or 0

    @property
    def processed_tracks(self) -> int:
        return self.downloaded_tracks + self.skipped_tracks + self.failed_tracks

    @property
    def success_rate(self) -> float:
        """Share of tracks that are on disk after the run (downloaded or skipped)"""
        if self.total_tracks == 0:
            return 0.0
        return (self.downloaded_tracks + self.skipped_tracks) / self.total_tracks

    @property
    def duration(self) -> Optional[float]:
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None

    @property
    def total_size_mb(self) -> float:
        return self.total_size_bytes / (1024 * 1024)

    def provider_summary(self) -> str:
        if not self.by_provider:
            return "none"
        return ", ".join(
            f"{provider.display_name}: {count}"
            for provider, count in sorted(self.by_provider.items(), key=lambda item: item[0].value)
        )

    def __str__(self) -> str:
        return (f"Downloads: {self.downloaded_tracks}/{self.total_tracks} "
                f"({self.success_rate:.1%} available), "
                f"Skipped: {self.skipped_tracks}, Failed: {self.failed_tracks}, "
                f"Size: {self.total_size_mb:.1f}MB")

"""
Track and collection download pipeline

A track goes through four phases:

1. **Skip check**: ``"<artist> - <title>.<ext>"`` already in the target
   directory means nothing to do (the MP3 name counts too, since Kugou
   only serves MP3)
2. **Resolution**: the orchestrator downloads the audio to a hidden staging
   file next to the final one
3. **Reconciliation**: Kugou names (or a MusicBrainz reference) may replace
   the Spotify tags
4. **Tagging**: a tagged copy of the staging file is renamed onto the final
   name, whose extension follows the container actually delivered; when
   tagging fails the untagged audio is moved there instead

Collections are processed one track at a time with a pause between tracks.
Tracks that could not be downloaded are appended to a JSON failure log in the
target directory so they can be retried later.
"""

import json
import os
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from ..audio.tagger import TagSet
from ..core.exceptions import MetadataError
from ..core.models import DownloadResult, ProviderId, TagProposal, TrackMeta
from ..sources.kugou import AUDIO_EXTENSION as KUGOU_EXTENSION
from ..utils.files import remove_quietly
from ..utils.helpers import get_file_extension, sanitize_filename
from ..utils.logger import create_operation_logger, get_logger
from .stats import DownloadStats


class TrackStatus(Enum):
    """
    Final state of one track in a run

    Values:
        DOWNLOADED: Audio written (and tagged unless tagging failed)
        SKIPPED: The file was already present
        FAILED: No provider delivered the audio
    """
    DOWNLOADED = "downloaded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class TrackOutcome:
    """
    Result of TrackProcessor.process

    Attributes:
        track: Canonical metadata of the track
        status: What happened
        file_path: Final file path (also set for skipped tracks)
        result: Orchestrator result, None for skipped tracks
        proposal: Tag correction that was applied, if any
        tagged: False when the audio was kept without tags
        error: Failure message for failed tracks
    """
    track: TrackMeta
    status: TrackStatus
    file_path: Optional[Path] = None
    result: Optional[DownloadResult] = None
    proposal: Optional[TagProposal] = None
    tagged: bool = False
    error: Optional[str] = None

    @property
    def provider(self) -> Optional[ProviderId]:
        if self.result is not None and self.result.success:
            return self.result.provider
        return None


def build_file_name(meta: TrackMeta, extension: str) -> str:
    """``"<artist> - <title><extension>"`` with unsafe characters removed"""
    return sanitize_filename(f"{meta.artist} - {meta.title}") + extension


def staging_path_for(final_path: Path) -> Path:
    """Hidden sibling the orchestrator downloads into; keeps the audio extension"""
    return final_path.with_name(f".{final_path.stem}.download{final_path.suffix}")


class TrackProcessor:
    """
    Download, reconcile and tag a single track

    Args:
        orchestrator: DownloadOrchestrator used for resolution
        tag_writer: TagWriter
        reconciler: MetadataReconciler, None disables reconciliation
        cover_fetcher: CoverArtFetcher, None disables album art
        audio_format: Output format (mp3, flac, m4a)
        skip_existing: Skip tracks whose file already exists
        download_options: Per-run overrides passed to ``download_audio``
                          (preferred_provider, secondary_enabled,
                          max_retries_per_provider)
    """

    def __init__(
        self,
        orchestrator,
        tag_writer,
        reconciler=None,
        cover_fetcher=None,
        audio_format: str = "mp3",
        skip_existing: bool = True,
        download_options: Optional[Dict] = None
    ):
        self.orchestrator = orchestrator
        self.tag_writer = tag_writer
        self.reconciler = reconciler
        self.cover_fetcher = cover_fetcher
        self.extension = get_file_extension(audio_format)
        self.skip_existing = skip_existing
        self.download_options = download_options or {}
        self.logger = get_logger(__name__)

    def target_path(self, meta: TrackMeta, target_dir: Union[str, Path]) -> Path:
        return Path(target_dir) / build_file_name(meta, self.extension)

    def existing_file(self, meta: TrackMeta, target_dir: Union[str, Path]) -> Optional[Path]:
        """Earlier download of ``meta`` in the configured format or as a Kugou MP3"""
        target = self.target_path(meta, target_dir)
        for candidate in (target, target.with_suffix(KUGOU_EXTENSION)):
            if candidate.exists():
                return candidate
        return None

    def delivered_path(self, final_path: Path, result: DownloadResult) -> Path:
        """Final name carrying the extension of the container the provider served"""
        if result.provider is ProviderId.KUGOU:
            return final_path.with_suffix(KUGOU_EXTENSION)
        return final_path

    def process(self, meta: TrackMeta, target_dir: Union[str, Path]) -> TrackOutcome:
        """
        Run the full pipeline for one track

        The target directory must exist. Provider failures are reported in the
        outcome; only interruptions propagate.

        Args:
            meta: Canonical track metadata
            target_dir: Directory receiving the audio file

        Returns:
            TrackOutcome
        """
        final_path = self.target_path(meta, target_dir)

        existing = self.existing_file(meta, target_dir) if self.skip_existing else None
        if existing is not None:
            self.logger.info(f"Already downloaded, skipping: {existing.name}")
            return TrackOutcome(track=meta, status=TrackStatus.SKIPPED, file_path=existing)

        staging_path = staging_path_for(final_path)
        try:
            result = self.orchestrator.download_audio(
                meta.artist, meta.title, str(staging_path), **self.download_options
            )
            if not result.success:
                error = result.error or "Download failed"
                self.logger.warning(f"Failed to download {meta.artist} - {meta.title}: {error}")
                return TrackOutcome(
                    track=meta,
                    status=TrackStatus.FAILED,
                    result=result,
                    error=error
                )

            final_path = self.delivered_path(final_path, result)
            self.logger.info(f"Downloaded {final_path.name} from {result.provider_display_name}")
            proposal = self._reconcile(meta, result)
            tagged = self._finalize(meta, proposal, staging_path, final_path)
        finally:
            remove_quietly(staging_path)

        return TrackOutcome(
            track=meta,
            status=TrackStatus.DOWNLOADED,
            file_path=final_path,
            result=result,
            proposal=proposal,
            tagged=tagged
        )

    def _reconcile(self, meta: TrackMeta, result: DownloadResult) -> Optional[TagProposal]:
        if self.reconciler is None:
            return None
        proposal = self.reconciler.propose(meta, result.discovered_metadata)
        if proposal is not None:
            changes = ", ".join(f"{key}: {value}" for key, value in proposal.as_dict().items())
            self.logger.info(f"Tags corrected for {meta.artist} - {meta.title} ({changes})")
        return proposal

    def _finalize(self, meta: TrackMeta, proposal: Optional[TagProposal],
                  staging_path: Path, final_path: Path) -> bool:
        """Tag into the final path, or move the untagged audio there if tagging fails"""
        tags = TagSet.from_track_meta(meta).with_proposal(proposal)
        cover_path = None
        if self.cover_fetcher is not None and meta.images:
            cover_path = self.cover_fetcher.fetch(meta.images[0])

        try:
            self.tag_writer.apply(staging_path, final_path, tags, cover_image_path=cover_path)
            return True
        except MetadataError as e:
            self.logger.warning(f"Keeping untagged audio for {final_path.name}: {e}")
            os.replace(staging_path, final_path)
            return False
        finally:
            if cover_path is not None:
                remove_quietly(cover_path)


class FailedTrackLog:
    """
    JSON list of tracks that could not be downloaded

    Entries are appended, never rewritten, so several runs accumulate in the
    same file. An unreadable file is started over.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.logger = get_logger(__name__)

    def read(self) -> List[Dict[str, str]]:
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                entries = json.load(f)
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as e:
            self.logger.warning(f"Ignoring unreadable failure log {self.path}: {e}")
            return []
        return entries if isinstance(entries, list) else []

    def append(self, meta: TrackMeta, error: str) -> None:
        entries = self.read()
        entries.append({
            'url': meta.source_url or "",
            'artist': meta.artist,
            'title': meta.title,
            'error': error,
            'timestamp': datetime.now().isoformat(),
        })
        try:
            with open(self.path, 'w', encoding='utf-8') as f:
                json.dump(entries, f, indent=2, ensure_ascii=False)
        except OSError as e:
            self.logger.error(f"Failed to record failed track in {self.path}: {e}")


class CollectionDownloader:
    """
    Sequential batch download of a track list

    Args:
        processor: TrackProcessor
        inter_track_delay: Pause between tracks in seconds
        failed_tracks_file: File name of the failure log inside the target
                            directory, empty to disable it
        sleep: Sleep function (injectable for tests)
    """

    def __init__(
        self,
        processor: TrackProcessor,
        inter_track_delay: float = 1.0,
        failed_tracks_file: str = "failed_tracks.json",
        sleep: Callable[[float], None] = time.sleep
    ):
        self.processor = processor
        self.inter_track_delay = inter_track_delay
        self.failed_tracks_file = failed_tracks_file
        self._sleep = sleep
        self.logger = get_logger(__name__)

    def run(self, tracks: List[TrackMeta], target_dir: Union[str, Path],
            name: Optional[str] = None) -> DownloadStats:
        """
        Download every track into ``target_dir``

        Ctrl-C stops the batch before the next track; the statistics gathered
        so far are returned with ``interrupted`` set.

        Args:
            tracks: Tracks in download order
            target_dir: Output directory, created when missing
            name: Collection name for progress messages

        Returns:
            DownloadStats
        """
        target_dir = Path(target_dir)
        target_dir.mkdir(parents=True, exist_ok=True)
        failed_log = FailedTrackLog(target_dir / self.failed_tracks_file) if self.failed_tracks_file else None

        stats = DownloadStats(total_tracks=len(tracks), start_time=datetime.now())
        operation = create_operation_logger(__name__, f"Download {name or target_dir.name}")
        operation.start(f"🎵 Downloading {len(tracks)} tracks to {target_dir}")

        try:
            for index, meta in enumerate(tracks, 1):
                outcome = self.processor.process(meta, target_dir)
                self._record(stats, outcome, failed_log)
                operation.progress(f"{meta.artist} - {meta.title}", index, len(tracks))

                if index < len(tracks) and outcome.status is not TrackStatus.SKIPPED:
                    self._sleep(self.inter_track_delay)
        except KeyboardInterrupt:
            stats.interrupted = True
            operation.error("interrupted by user")
        else:
            operation.complete(f"✅ {stats}")
        finally:
            stats.end_time = datetime.now()

        return stats

    def _record(self, stats: DownloadStats, outcome: TrackOutcome,
                failed_log: Optional[FailedTrackLog]) -> None:
        if outcome.status is TrackStatus.SKIPPED:
            stats.skipped_tracks += 1
        elif outcome.status is TrackStatus.DOWNLOADED:
            stats.record_success(outcome.provider, outcome.result.file_size)
            if outcome.proposal is not None:
                stats.retagged_tracks += 1
        else:
            stats.failed_tracks += 1
            if failed_log is not None:
                failed_log.append(outcome.track, outcome.error or "Download failed")

"""
YouTube source using yt-dlp

The general source does not expose candidates: yt-dlp's ``ytsearch1:`` search
both picks and downloads the single best hit, so the only operation is
``download(wanted, output_path)``.

yt-dlp writes next to the final file under a hidden staging name. The FFmpeg
post-processor converts to the configured format, then the converted file is
moved onto ``output_path``.
"""

import os
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yt_dlp
from yt_dlp.utils import DownloadError

from ..core.exceptions import AccessRestrictedError, NotFoundError, TransientError
from ..core.models import ProviderId, WantedTrack
from ..utils.files import remove_quietly
from ..utils.logger import get_logger, log_performance

AUDIO_SUFFIXES = ('.mp3', '.flac', '.m4a', '.aac', '.opus', '.ogg', '.webm')

# yt-dlp error fragments for videos that exist but cannot be fetched
RESTRICTED_MARKERS = (
    'Private video',
    'Sign in to confirm your age',
    'members-only',
    'not available in your country',
    'blocked it in your country',
    'This video requires payment',
)


class YouTubeSource:
    """
    yt-dlp backed search-and-download source

    Args:
        audio_format: Target format (mp3, flac or m4a)
        bitrate: Target bitrate in kbps for lossy formats
        search_prefix: yt-dlp search prefix, ``ytsearch1`` for a single hit
        cookies_file: Optional Netscape cookies file passed to yt-dlp
        socket_timeout: Network timeout in seconds
    """

    provider = ProviderId.YOUTUBE

    def __init__(
        self,
        audio_format: str = "mp3",
        bitrate: int = 320,
        search_prefix: str = "ytsearch1",
        cookies_file: str = "",
        socket_timeout: int = 30
    ):
        self.audio_format = audio_format
        self.bitrate = bitrate
        self.search_prefix = search_prefix
        self.cookies_file = cookies_file
        self.socket_timeout = socket_timeout
        self.logger = get_logger(__name__)

    @classmethod
    def from_settings(cls, settings) -> 'YouTubeSource':
        return cls(
            audio_format=settings.download.format,
            bitrate=settings.download.bitrate,
            search_prefix=settings.youtube.search_prefix,
            cookies_file=settings.youtube.cookies_file,
            socket_timeout=settings.youtube.socket_timeout
        )

    def build_query(self, wanted: WantedTrack) -> str:
        return f"{self.search_prefix}:{wanted.artist} - {wanted.title}"

    def _get_ydl_options(self, outtmpl: str) -> Dict[str, Any]:
        """yt-dlp options for a quiet, audio-only, single-result download"""
        options = {
            'format': 'bestaudio/best',
            'outtmpl': outtmpl,
            'noplaylist': True,
            'overwrites': True,
            'nopart': True,

            'quiet': True,
            'no_warnings': True,
            'noprogress': True,
            'logtostderr': False,
            'consoletitle': False,

            'socket_timeout': self.socket_timeout,
            'retries': 1,
            'fragment_retries': 1,
        }

        ffmpeg_location = shutil.which('ffmpeg')
        if ffmpeg_location:
            options['ffmpeg_location'] = ffmpeg_location

        if self.cookies_file:
            options['cookiefile'] = str(Path(self.cookies_file).expanduser())

        postprocessor = {
            'key': 'FFmpegExtractAudio',
            'preferredcodec': self.audio_format,
        }
        if self.audio_format != 'flac':
            postprocessor['preferredquality'] = str(self.bitrate)
        options['postprocessors'] = [postprocessor]

        return options

    @log_performance
    def download(self, wanted: WantedTrack, output_path: Union[str, Path]) -> int:
        """
        Search YouTube for ``"<artist> - <title>"`` and save the first hit

        Args:
            wanted: Track to look for
            output_path: Final audio file path

        Returns:
            Size of the written file in bytes

        Raises:
            NotFoundError: The search returned nothing
            AccessRestrictedError: The hit exists but cannot be fetched
            TransientError: Any other yt-dlp, network or filesystem failure
        """
        output_path = Path(output_path)
        staging_stem = f".{output_path.stem}.ytdl"
        outtmpl = str(output_path.parent / f"{staging_stem}.%(ext)s")
        query = self.build_query(wanted)

        self.logger.debug(f"yt-dlp search: {query}")
        try:
            with yt_dlp.YoutubeDL(self._get_ydl_options(outtmpl)) as ydl:
                info = ydl.extract_info(query, download=True)
        except DownloadError as e:
            self._cleanup(output_path.parent, staging_stem)
            raise self._classify(e, query) from e
        except OSError as e:
            self._cleanup(output_path.parent, staging_stem)
            raise TransientError(
                f"yt-dlp failed to write audio: {e}",
                details={'query': query, 'exception': e},
                provider=self.provider
            ) from e

        if not self._has_entries(info):
            self._cleanup(output_path.parent, staging_stem)
            raise NotFoundError(
                "No YouTube results",
                details={'query': query},
                provider=self.provider
            )

        downloaded = self._find_downloaded_file(output_path.parent, staging_stem)
        if downloaded is None:
            raise TransientError(
                "Downloaded file not found",
                details={'query': query},
                provider=self.provider
            )

        try:
            os.replace(downloaded, output_path)
        except OSError as e:
            remove_quietly(downloaded)
            raise TransientError(
                f"Failed to move audio into place: {e}",
                details={'path': str(output_path), 'exception': e},
                provider=self.provider
            ) from e

        return output_path.stat().st_size

    @staticmethod
    def _has_entries(info: Optional[Dict[str, Any]]) -> bool:
        if not info:
            return False
        if 'entries' in info:
            return any(entry for entry in (info.get('entries') or []))
        return True

    def _classify(self, error: DownloadError, query: str):
        message = str(error)
        details = {'query': query, 'exception': error}
        if any(marker in message for marker in RESTRICTED_MARKERS):
            return AccessRestrictedError(message, details=details, provider=self.provider)
        if 'Video unavailable' in message or 'No video results' in message:
            return NotFoundError(message, details=details, provider=self.provider)
        return TransientError(message, details=details, provider=self.provider)

    @staticmethod
    def _staging_files(directory: Path, staging_stem: str) -> List[Path]:
        # Prefix match, titles may contain glob characters such as [ ]
        prefix = f"{staging_stem}."
        return [p for p in directory.iterdir() if p.is_file() and p.name.startswith(prefix)]

    def _find_downloaded_file(self, directory: Path, staging_stem: str) -> Optional[Path]:
        for file_path in self._staging_files(directory, staging_stem):
            if file_path.suffix in AUDIO_SUFFIXES:
                return file_path
        return None

    def _cleanup(self, directory: Path, staging_stem: str) -> None:
        for file_path in self._staging_files(directory, staging_stem):
            remove_quietly(file_path)
            self.logger.debug(f"Cleaned up partial file: {file_path.name}")

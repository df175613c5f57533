"""
Tag writing for downloaded audio files

Supports MP3 (ID3v2 frames), FLAC (Vorbis comments plus a picture block) and
M4A (iTunes atoms) through mutagen. Artwork is downloaded once per track by
CoverArtFetcher, normalized with Pillow, and handed to TagWriter as a file
path so the writer itself never touches the network.
"""

import os
import shutil
import tempfile
from dataclasses import dataclass, replace
from io import BytesIO
from pathlib import Path
from typing import Optional, Union

import mutagen
import requests
from mutagen.flac import FLAC, Picture
from mutagen.id3 import ID3, APIC, TALB, TDRC, TPE1, TPE2, TPOS, TRCK, TIT2, TSRC
from mutagen.mp3 import MP3
from mutagen.mp4 import MP4, MP4Cover
from PIL import Image

from ..core.exceptions import MetadataError
from ..core.models import TagProposal, TrackMeta
from ..utils.files import remove_quietly
from ..utils.logger import get_logger

MAX_COVER_SIZE = 1000
COVER_QUALITY = 90


def tagging_path_for(output_path: Path) -> Path:
    """Hidden sibling tagged before the rename; keeps the suffix mutagen dispatches on"""
    return output_path.with_name(f".{output_path.stem}.tagging{output_path.suffix}")


@dataclass(frozen=True)
class TagSet:
    """Tag values written to a file"""
    title: str
    artist: str
    album: str = ""
    album_artist: str = ""
    year: Optional[str] = None
    track_number: Optional[int] = None
    total_tracks: Optional[int] = None
    disc_number: Optional[int] = None
    isrc: Optional[str] = None

    @classmethod
    def from_track_meta(cls, meta: TrackMeta) -> 'TagSet':
        return cls(
            title=meta.title,
            artist=meta.artist,
            album=meta.album,
            album_artist=meta.album_artist or meta.artist,
            year=meta.year,
            track_number=meta.track_number,
            total_tracks=meta.total_tracks,
            disc_number=meta.disc_number,
            isrc=meta.isrc
        )

    def with_proposal(self, proposal: Optional[TagProposal]) -> 'TagSet':
        """Copy with the proposal's populated fields applied"""
        if proposal is None or proposal.is_empty:
            return self
        return replace(self, **proposal.as_dict())

    @property
    def track_label(self) -> Optional[str]:
        if not self.track_number:
            return None
        if self.total_tracks:
            return f"{self.track_number}/{self.total_tracks}"
        return str(self.track_number)


class CoverArtFetcher:
    """
    Download album artwork into a temporary JPEG file

    Images are converted to RGB, shrunk to at most 1000x1000 and saved as
    JPEG quality 90. The caller deletes the returned file.
    """

    def __init__(self, user_agent: str = "songfetch", timeout: int = 30,
                 session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'User-Agent': user_agent})
        self.logger = get_logger(__name__)

    @classmethod
    def from_settings(cls, settings) -> 'CoverArtFetcher':
        return cls(user_agent=settings.network.user_agent, timeout=settings.network.request_timeout)

    def fetch(self, image_url: Optional[str]) -> Optional[Path]:
        """
        Returns:
            Path of the temporary JPEG, or None when there is no usable image
        """
        if not image_url:
            return None

        try:
            response = self.session.get(image_url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            self.logger.warning(f"Failed to download album art from {image_url}: {e}")
            return None

        try:
            with Image.open(BytesIO(response.content)) as img:
                if img.mode != 'RGB':
                    img = img.convert('RGB')
                if img.width > MAX_COVER_SIZE or img.height > MAX_COVER_SIZE:
                    img.thumbnail((MAX_COVER_SIZE, MAX_COVER_SIZE), Image.Resampling.LANCZOS)
                output = BytesIO()
                img.save(output, format='JPEG', quality=COVER_QUALITY, optimize=True)
        except (OSError, ValueError) as e:
            self.logger.warning(f"Failed to process album art image: {e}")
            return None

        with tempfile.NamedTemporaryFile(prefix="songfetch-cover-", suffix=".jpg", delete=False) as f:
            f.write(output.getvalue())
            return Path(f.name)


class TagWriter:
    """
    Write a TagSet (and optional cover) into an audio file

    Args:
        id3_version: "2.3" or "2.4" for MP3 files
    """

    def __init__(self, id3_version: str = "2.4"):
        self.id3_version = id3_version
        self.logger = get_logger(__name__)

    def apply(
        self,
        input_path: Union[str, Path],
        output_path: Union[str, Path],
        tags: TagSet,
        cover_image_path: Optional[Union[str, Path]] = None
    ) -> None:
        """
        Write a tagged copy of ``input_path`` to ``output_path``

        The copy is tagged under a hidden name next to ``output_path`` and
        renamed over it only once mutagen has saved, so ``output_path`` is
        either untouched or complete. Existing tags are replaced.

        Raises:
            MetadataError: Unsupported format, unreadable file or mutagen failure
        """
        input_path = Path(input_path)
        output_path = Path(output_path)
        suffix = output_path.suffix.lower()

        writer = self._writer_for(suffix)
        if writer is None:
            raise MetadataError(f"Unsupported file format: {suffix}", details={'path': str(output_path)})

        cover = None
        if cover_image_path:
            try:
                cover = Path(cover_image_path).read_bytes()
            except OSError as e:
                self.logger.warning(f"Failed to read cover image {cover_image_path}: {e}")

        work_path = tagging_path_for(output_path)
        try:
            shutil.copyfile(input_path, work_path)
            writer(work_path, tags, cover)
            os.replace(work_path, output_path)
        except (OSError, mutagen.MutagenError) as e:
            raise MetadataError(
                f"Failed to write tags to {output_path.name}: {e}",
                details={'path': str(output_path), 'exception': e}
            ) from e
        finally:
            remove_quietly(work_path)

        self.logger.debug(f"Tags written: {output_path.name}")

    def _writer_for(self, suffix: str):
        if suffix == '.mp3':
            return self._write_mp3
        if suffix == '.flac':
            return self._write_flac
        if suffix in ('.m4a', '.mp4'):
            return self._write_mp4
        return None

    def _write_mp3(self, path: Path, tags: TagSet, cover: Optional[bytes]) -> None:
        audio = MP3(path, ID3=ID3)
        if audio.tags is None:
            audio.add_tags()
        audio.tags.clear()

        audio.tags.add(TIT2(encoding=3, text=tags.title))
        audio.tags.add(TPE1(encoding=3, text=tags.artist))
        if tags.album:
            audio.tags.add(TALB(encoding=3, text=tags.album))
        if tags.album_artist:
            audio.tags.add(TPE2(encoding=3, text=tags.album_artist))
        if tags.year:
            audio.tags.add(TDRC(encoding=3, text=tags.year))
        if tags.track_label:
            audio.tags.add(TRCK(encoding=3, text=tags.track_label))
        if tags.disc_number:
            audio.tags.add(TPOS(encoding=3, text=str(tags.disc_number)))
        if tags.isrc:
            audio.tags.add(TSRC(encoding=3, text=tags.isrc))
        if cover:
            audio.tags.add(APIC(encoding=3, mime='image/jpeg', type=3, desc='Cover', data=cover))

        audio.save(v2_version=4 if self.id3_version == "2.4" else 3)

    def _write_flac(self, path: Path, tags: TagSet, cover: Optional[bytes]) -> None:
        audio = FLAC(path)
        audio.clear()
        audio.clear_pictures()

        audio['TITLE'] = tags.title
        audio['ARTIST'] = tags.artist
        if tags.album:
            audio['ALBUM'] = tags.album
        if tags.album_artist:
            audio['ALBUMARTIST'] = tags.album_artist
        if tags.year:
            audio['DATE'] = tags.year
        if tags.track_number:
            audio['TRACKNUMBER'] = str(tags.track_number)
        if tags.total_tracks:
            audio['TRACKTOTAL'] = str(tags.total_tracks)
        if tags.disc_number:
            audio['DISCNUMBER'] = str(tags.disc_number)
        if tags.isrc:
            audio['ISRC'] = tags.isrc

        if cover:
            picture = Picture()
            picture.type = 3  # Cover (front)
            picture.mime = 'image/jpeg'
            picture.desc = 'Cover'
            picture.data = cover
            audio.add_picture(picture)

        audio.save()

    def _write_mp4(self, path: Path, tags: TagSet, cover: Optional[bytes]) -> None:
        audio = MP4(path)
        if audio.tags is None:
            audio.add_tags()
        audio.tags.clear()

        audio['\xa9nam'] = [tags.title]
        audio['\xa9ART'] = [tags.artist]
        if tags.album:
            audio['\xa9alb'] = [tags.album]
        if tags.album_artist:
            audio['aART'] = [tags.album_artist]
        if tags.year:
            audio['\xa9day'] = [tags.year]
        if tags.track_number:
            audio['trkn'] = [(tags.track_number, tags.total_tracks or 0)]
        if tags.disc_number:
            audio['disk'] = [(tags.disc_number, 0)]
        if cover:
            audio['covr'] = [MP4Cover(cover, MP4Cover.FORMAT_JPEG)]

        audio.save()

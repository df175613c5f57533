"""
Normalization of Kugou catalog payloads

KuGouMusicApi proxies several upstream endpoints whose song objects use
different spellings for the same field (``FileHash`` vs ``hash``,
``SongName`` vs ``songName`` vs ``name`` ...). Everything in this module is
pure: it maps loosely typed dictionaries onto CandidateRecord and never raises
on odd input.
"""

from typing import Any, Dict, List, Optional

from ..core.models import CandidateRecord

# Aliases in priority order
HASH_KEYS = ('FileHash', 'hash', 'Hash')
SONG_NAME_KEYS = ('FileName', 'SongName', 'songName', 'name', 'OriSongName')
SINGER_KEYS = ('SingerName', 'singerName', 'artist', 'artistName')
ALBUM_KEYS = ('AlbumName', 'albumName', 'album')
DURATION_KEYS = ('Duration', 'duration')
SIZE_KEYS = ('FileSize', 'fileSize', 'size')


def _first_text(item: Dict[str, Any], keys) -> str:
    for key in keys:
        value = item.get(key)
        if value is None or isinstance(value, (dict, list)):
            continue
        text = str(value).strip()
        if text:
            return text
    return ""


def _first_int(item: Dict[str, Any], keys) -> int:
    for key in keys:
        value = item.get(key)
        if value is None or isinstance(value, bool):
            continue
        try:
            return int(float(value))
        except (TypeError, ValueError):
            continue
    return 0


def normalize_candidate(item: Any) -> Optional[CandidateRecord]:
    """
    Map one raw song object onto a CandidateRecord

    Args:
        item: Raw song object from a search response

    Returns:
        CandidateRecord, or None when the item has no hash or no song name
        (such an entry can be neither scored nor downloaded)
    """
    if not isinstance(item, dict):
        return None

    source_id = _first_text(item, HASH_KEYS)
    song_name = _first_text(item, SONG_NAME_KEYS)
    if not source_id or not song_name:
        return None

    return CandidateRecord(
        source_id=source_id,
        song_name=song_name,
        singer_name=_first_text(item, SINGER_KEYS),
        album_name=_first_text(item, ALBUM_KEYS),
        duration=_first_int(item, DURATION_KEYS),
        file_size=_first_int(item, SIZE_KEYS),
    )


def extract_song_list(payload: Any) -> List[Any]:
    """
    Find the song array inside a search response

    Checked in order: ``data.lists``, ``data.songs``, ``data`` itself when it
    is a list, then top-level ``songs`` and ``lists``.

    Returns:
        The raw song objects, empty when none of the shapes match
    """
    if not isinstance(payload, dict):
        return []

    data = payload.get('data')
    if isinstance(data, dict):
        for key in ('lists', 'songs'):
            if isinstance(data.get(key), list):
                return data[key]
    elif isinstance(data, list):
        return data

    for key in ('songs', 'lists'):
        if isinstance(payload.get(key), list):
            return payload[key]

    return []


def normalize_candidates(payload: Any) -> List[CandidateRecord]:
    """Normalize every usable song object of a search response, keeping upstream order"""
    records = []
    for item in extract_song_list(payload):
        record = normalize_candidate(item)
        if record is not None:
            records.append(record)
    return records


def is_accepted_response(payload: Any) -> bool:
    """Whether a search response counts as an answer (``status == 1``, ``code == 0`` or ``data`` present)"""
    if not isinstance(payload, dict):
        return False
    return payload.get('status') == 1 or payload.get('code') == 0 or payload.get('data') is not None


def extract_play_url(payload: Dict[str, Any]) -> Optional[str]:
    """
    Pull the playable URL out of a ``status == 1`` song URL response

    Checked in order: ``url`` (first entry when it is a list), ``backupUrl[0]``,
    ``data.play_url``, ``data.url``, top-level ``play_url``.
    """
    url = payload.get('url')
    if isinstance(url, list) and url:
        url = url[0]
    if isinstance(url, str) and url:
        return url

    backup = payload.get('backupUrl')
    if isinstance(backup, list) and backup and isinstance(backup[0], str) and backup[0]:
        return backup[0]

    data = payload.get('data')
    if isinstance(data, dict):
        for key in ('play_url', 'url'):
            if isinstance(data.get(key), str) and data[key]:
                return data[key]

    play_url = payload.get('play_url')
    if isinstance(play_url, str) and play_url:
        return play_url

    return None

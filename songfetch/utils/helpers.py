"""
Small helpers shared by the pipeline and the CLI: output file names,
catalog search strings and human-readable sizes and durations.
"""

import re
import unicodedata
from typing import Union


# Path separators, Windows-forbidden characters and control codes
_FORBIDDEN_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f\x7f-\x9f]')
# Anything outside word characters and common punctuation (drops emoji)
_SYMBOL_CHARS = re.compile(r"[^\w\s\-.,()\[\]{}!@#$%^&+=']")
_WHITESPACE = re.compile(r'\s+')
_SEARCH_NOISE = re.compile(r'[!,\-()\[\]]')

_WINDOWS_DEVICE_NAMES = frozenset(
    ['CON', 'PRN', 'AUX', 'NUL']
    + [f'COM{n}' for n in range(1, 10)]
    + [f'LPT{n}' for n in range(1, 10)]
)

_AUDIO_EXTENSIONS = {'mp3': '.mp3', 'm4a': '.m4a', 'flac': '.flac'}


def sanitize_filename(filename: str, max_length: int = 200, replace_spaces: bool = False) -> str:
    """
    Turn a track or collection name into a safe file name

    CJK and accented characters survive (after NFC normalization); emoji,
    path separators and characters Windows rejects are removed. Windows
    device names get a leading underscore. Returns ``"unknown"`` when nothing
    usable is left.
    """
    name = unicodedata.normalize('NFC', (filename or '').strip().strip('"\''))
    name = _SYMBOL_CHARS.sub('', _FORBIDDEN_CHARS.sub('', name))
    name = _WHITESPACE.sub(' ', name).strip(' .')

    if replace_spaces:
        name = name.replace(' ', '_')

    if name.split('.', 1)[0].upper() in _WINDOWS_DEVICE_NAMES:
        name = '_' + name

    name = name[:max_length].rstrip(' .')
    return name or "unknown"


def clean_search_title(title: str) -> str:
    """
    Reduce a title to plain words for catalog keyword search

    ``!``, ``,``, ``-``, parentheses and square brackets become spaces and
    whitespace runs collapse. The result may be empty.
    """
    return _WHITESPACE.sub(' ', _SEARCH_NOISE.sub(' ', title)).strip()


def format_duration(seconds: Union[int, float]) -> str:
    """``m:ss``, or ``h:mm:ss`` past an hour; negatives show as ``0:00``"""
    total = max(int(seconds), 0)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_file_size(size_bytes: int) -> str:
    """Binary-prefixed size such as ``3.4 MB``; whole bytes below 1 KB"""
    if size_bytes < 1024:
        return f"{max(int(size_bytes), 0)} B"

    size = float(size_bytes)
    for unit in ('KB', 'MB', 'GB', 'TB'):
        size /= 1024
        if size < 1024 or unit == 'TB':
            return f"{size:.1f} {unit}"


def get_file_extension(format_name: str) -> str:
    """Extension (with dot) for an audio format name; unknown formats give ``.mp3``"""
    return _AUDIO_EXTENSIONS.get(format_name.lower(), '.mp3')

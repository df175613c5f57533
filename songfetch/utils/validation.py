"""
Input validation utilities
"""

import re
from typing import Optional, Tuple

SPOTIFY_RESOURCE_TYPES = ('track', 'album', 'playlist')

_ID_PATTERN = re.compile(r'^[a-zA-Z0-9]{22}$')
_WEB_PATTERN = re.compile(r'spotify\.com/(?:intl-[a-z]+/)?(track|album|playlist)/([^/?#]+)')


def parse_spotify_url(url: str) -> Tuple[str, str]:
    """
    Split a Spotify URL or URI into resource type and ID

    Supported forms:
    - https://open.spotify.com/track/ID?si=...
    - https://open.spotify.com/intl-de/album/ID
    - spotify:playlist:ID
    - a bare 22-character track ID

    Args:
        url: Spotify URL or URI

    Returns:
        Tuple of (resource_type, resource_id)

    Raises:
        ValueError: If the URL is not a track, album or playlist reference
    """
    if not url:
        raise ValueError("URL cannot be empty")

    url = url.strip()
    if _ID_PATTERN.match(url):
        # A bare ID is taken as a track
        return 'track', url

    if url.startswith('spotify:'):
        parts = url.split(':')
        if len(parts) < 3 or parts[1] not in SPOTIFY_RESOURCE_TYPES:
            raise ValueError(f"Invalid Spotify URI format: {url}")
        resource_type, resource_id = parts[1], parts[2]
    else:
        match = _WEB_PATTERN.search(url)
        if not match:
            raise ValueError(f"Not a Spotify track, album or playlist URL: {url}")
        resource_type, resource_id = match.groups()

    if not _ID_PATTERN.match(resource_id):
        raise ValueError(f"Invalid Spotify {resource_type} ID: {resource_id}")

    return resource_type, resource_id


def validate_spotify_url(url: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a Spotify track, album or playlist URL

    Args:
        url: URL to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        parse_spotify_url(url)
    except ValueError as e:
        return False, str(e)
    return True, None


def validate_provider_name(name: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a provider name given on the command line or in config

    Args:
        name: Provider name

    Returns:
        Tuple of (is_valid, error_message)
    """
    valid_providers = ['youtube', 'kugou']

    if not name:
        return False, "Provider cannot be empty"

    if name.lower() not in valid_providers:
        return False, f"Unknown provider: {name}. Valid options: {', '.join(valid_providers)}"

    return True, None

"""
Spotify metadata provider: API client and data models
"""

from .client import SpotifyClient
from .models import SpotifyArtist, SpotifyAlbum, SpotifyTrack

__all__ = [
    'SpotifyClient',
    'SpotifyArtist',
    'SpotifyAlbum',
    'SpotifyTrack',
]

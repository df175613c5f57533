"""Test configuration and fixtures"""

import pytest
import tempfile
from pathlib import Path
from unittest.mock import Mock

from songfetch.config.settings import Settings
from songfetch.core.exceptions import TransientError
from songfetch.core.models import CandidateRecord, ProviderId, TrackMeta


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def settings(temp_dir, monkeypatch):
    """Default settings isolated from the user's config and environment"""
    for var in ('SPOTIFY_CLIENT_ID', 'SPOTIFY_CLIENT_SECRET', 'DOWNLOAD_OUTPUT_DIR',
                'SONGFETCH_PREFER', 'KUGOU_API_URL', 'YTDLP_COOKIES'):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(temp_dir)
    monkeypatch.setattr(Path, 'home', lambda: temp_dir)

    settings = Settings()
    settings.security.config_directory = str(temp_dir / "config")
    settings.download.output_directory = str(temp_dir / "music")
    settings.kugou.auth_file = str(temp_dir / "config" / "kugou-auth.json")
    return settings


@pytest.fixture
def sample_track_data():
    """Sample Spotify playlist item"""
    return {
        'track': {
            'id': '4uLU6hMCjMI75M1A2tKUQC',
            'name': 'Ten Years',
            'artists': [{'id': 'artist_123', 'name': 'Eason Chan'}],
            'album': {
                'id': 'album_123',
                'name': 'Black White Grey',
                'album_type': 'album',
                'total_tracks': 12,
                'release_date': '2003-04-15',
                'artists': [{'id': 'artist_123', 'name': 'Eason Chan'}],
                'images': [
                    {'url': 'https://i.scdn.co/image/small', 'width': 64, 'height': 64},
                    {'url': 'https://i.scdn.co/image/large', 'width': 640, 'height': 640},
                    {'url': 'https://i.scdn.co/image/medium', 'width': 300, 'height': 300},
                ]
            },
            'duration_ms': 205000,
            'track_number': 3,
            'disc_number': 1,
            'external_ids': {'isrc': 'HKA010300123'},
            'external_urls': {'spotify': 'https://open.spotify.com/track/4uLU6hMCjMI75M1A2tKUQC'},
            'is_local': False
        }
    }


@pytest.fixture
def track_meta():
    """Canonical metadata of a track with romanized names"""
    return TrackMeta(
        title="Ten Years",
        artist="Eason Chan",
        album="Black White Grey",
        album_artist="Eason Chan",
        isrc="HKA010300123",
        track_number=3,
        total_tracks=12,
        disc_number=1,
        release_date="2003-04-15",
        source_url="https://open.spotify.com/track/4uLU6hMCjMI75M1A2tKUQC"
    )


@pytest.fixture
def kugou_search_payload():
    """Search response in the ``data.lists`` shape"""
    return {
        'status': 1,
        'data': {
            'lists': [
                {'FileHash': 'HASHLIVE', 'SongName': '十年 (Live)', 'SingerName': '陈奕迅',
                 'AlbumName': 'Live', 'Duration': 230, 'FileSize': 9200000},
                {'FileHash': 'HASHSTUDIO', 'SongName': '十年', 'SingerName': '陈奕迅',
                 'AlbumName': '黑白灰', 'Duration': 205, 'FileSize': 8200000},
                {'FileHash': 'HASHCOVER', 'SongName': '十年', 'SingerName': '翻唱歌手',
                 'AlbumName': '', 'Duration': 200, 'FileSize': 8000000},
            ]
        }
    }


def make_candidate(source_id, song_name, singer_name, album_name=""):
    return CandidateRecord(source_id=source_id, song_name=song_name,
                           singer_name=singer_name, album_name=album_name)


class FakePrimarySource:
    """YouTube stand-in: raises the queued errors, then writes the file"""

    provider = ProviderId.YOUTUBE

    def __init__(self, errors=None, content=b"youtube-audio"):
        self.errors = list(errors or [])
        self.content = content
        self.calls = []

    def download(self, wanted, output_path):
        self.calls.append((wanted, str(output_path)))
        if self.errors:
            raise self.errors.pop(0)
        Path(output_path).write_bytes(self.content)
        return len(self.content)


class FakeSecondarySource:
    """
    Kugou stand-in

    ``results`` maps a query to a candidate list or to an exception; queries
    not listed return no candidates.
    """

    provider = ProviderId.KUGOU

    def __init__(self, results=None, play_url_errors=None, download_errors=None,
                 content=b"kugou-audio"):
        self.results = results or {}
        self.play_url_errors = list(play_url_errors or [])
        self.download_errors = list(download_errors or [])
        self.content = content
        self.queries = []
        self.play_url_calls = []

    def search(self, keyword):
        self.queries.append(keyword)
        result = self.results.get(keyword, [])
        if isinstance(result, Exception):
            raise result
        return result

    def get_play_url(self, file_hash):
        self.play_url_calls.append(file_hash)
        if self.play_url_errors:
            raise self.play_url_errors.pop(0)
        return f"https://cdn.example/{file_hash}.mp3"

    def download(self, url, output_path, file_hash=""):
        if self.download_errors:
            raise self.download_errors.pop(0)
        Path(output_path).write_bytes(self.content)
        return len(self.content)


@pytest.fixture
def fake_primary():
    return FakePrimarySource()


@pytest.fixture
def unreachable_search():
    return TransientError("connection refused", provider=ProviderId.KUGOU)


@pytest.fixture
def no_sleep():
    """Recording sleep replacement"""
    return Mock()

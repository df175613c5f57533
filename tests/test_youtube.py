"""Test the yt-dlp source"""

import pytest
from yt_dlp.utils import DownloadError

from songfetch.core.exceptions import AccessRestrictedError, NotFoundError, TransientError
from songfetch.core.models import WantedTrack
from songfetch.sources.youtube import YouTubeSource


class FakeYoutubeDL:
    """YoutubeDL stand-in writing ``content`` with ``ext`` into the output template"""

    created = []

    def __init__(self, options, info=None, error=None, ext="mp3", content=b"audio"):
        self.options = options
        self.info = {'id': 'abc', 'title': 'Ten Years'} if info is None else info
        self.error = error
        self.ext = ext
        self.content = content
        self.queries = []
        FakeYoutubeDL.created.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def extract_info(self, query, download=True):
        self.queries.append(query)
        if self.error is not None:
            with open(self.options['outtmpl'].replace('%(ext)s', 'webm'), 'wb') as f:
                f.write(b"partial")
            raise self.error
        if self.info:
            with open(self.options['outtmpl'].replace('%(ext)s', self.ext), 'wb') as f:
                f.write(self.content)
        return self.info


@pytest.fixture
def fake_ydl(monkeypatch):
    FakeYoutubeDL.created = []
    behaviour = {}

    def factory(options):
        return FakeYoutubeDL(options, **behaviour)

    monkeypatch.setattr('songfetch.sources.youtube.yt_dlp.YoutubeDL', factory)
    return behaviour


WANTED = WantedTrack(artist="Eason Chan", title="Ten Years")


class TestYouTubeSource:
    """Test YouTubeSource.download"""

    def test_query(self):
        assert YouTubeSource().build_query(WANTED) == "ytsearch1:Eason Chan - Ten Years"

    def test_options(self):
        source = YouTubeSource(audio_format="m4a", bitrate=256, cookies_file="/tmp/cookies.txt")
        options = source._get_ydl_options("/out/%(ext)s")

        assert options['noplaylist'] is True
        assert options['cookiefile'] == "/tmp/cookies.txt"
        assert options['postprocessors'] == [
            {'key': 'FFmpegExtractAudio', 'preferredcodec': 'm4a', 'preferredquality': '256'}
        ]

    def test_flac_has_no_quality(self):
        options = YouTubeSource(audio_format="flac")._get_ydl_options("/out/%(ext)s")
        assert 'preferredquality' not in options['postprocessors'][0]

    def test_download_moves_file_into_place(self, fake_ydl, temp_dir):
        output = temp_dir / "Eason Chan - Ten Years [Live].mp3"

        size = YouTubeSource().download(WANTED, output)

        assert size == len(b"audio")
        assert output.read_bytes() == b"audio"
        assert [p.name for p in temp_dir.iterdir()] == [output.name]
        assert FakeYoutubeDL.created[0].queries == ["ytsearch1:Eason Chan - Ten Years"]

    def test_empty_search(self, fake_ydl, temp_dir):
        fake_ydl['info'] = {'entries': []}

        with pytest.raises(NotFoundError):
            YouTubeSource().download(WANTED, temp_dir / "song.mp3")

    @pytest.mark.parametrize("message,expected", [
        ("ERROR: [youtube] abc: Private video", AccessRestrictedError),
        ("ERROR: [youtube] abc: Sign in to confirm your age", AccessRestrictedError),
        ("ERROR: [youtube] abc: Video unavailable", NotFoundError),
        ("ERROR: Unable to download webpage: timed out", TransientError),
    ])
    def test_errors_classified(self, fake_ydl, temp_dir, message, expected):
        """yt-dlp errors map onto the failure taxonomy and leave no partial files"""
        fake_ydl['error'] = DownloadError(message)

        with pytest.raises(expected):
            YouTubeSource().download(WANTED, temp_dir / "song.mp3")

        assert list(temp_dir.iterdir()) == []

    def test_missing_output(self, fake_ydl, temp_dir):
        fake_ydl['ext'] = "info.json"

        with pytest.raises(TransientError, match="not found"):
            YouTubeSource().download(WANTED, temp_dir / "song.mp3")

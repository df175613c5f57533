"""Test the Kugou catalog adapter, byte transport, login store and service"""

import json
from unittest.mock import MagicMock, Mock, patch

import pytest
import requests

from songfetch.config.kugou_auth import DAY_MS, KugouAuthStore, KugouSession
from songfetch.core.exceptions import (
    AccessRestrictedError,
    KugouAuthError,
    NotFoundError,
    TransientError,
)
from songfetch.core.models import FailureKind
from songfetch.sources.kugou import KugouSource
from songfetch.sources.kugou_service import KugouApiService
from songfetch.sources.normalize import (
    extract_play_url,
    extract_song_list,
    is_accepted_response,
    normalize_candidate,
    normalize_candidates,
)
from songfetch.sources.transport import (
    DEVICE_USER_AGENT,
    default_strategies,
    stream_to_file,
)


def json_response(payload, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload
    return response


def stream_response(status_code, chunks=()):
    response = MagicMock()
    response.__enter__.return_value = response
    response.status_code = status_code
    response.iter_content.return_value = list(chunks)
    return response


def logged_in_store(cookies="token=abc; userid=42"):
    store = Mock()
    store.cookies.return_value = cookies
    return store


class TestNormalize:
    """Test payload normalization"""

    def test_field_aliases(self):
        """Alternative key spellings map onto the same fields"""
        record = normalize_candidate({
            'hash': 'abc', 'songName': '十年', 'singerName': '陈奕迅',
            'albumName': '黑白灰', 'duration': '205', 'fileSize': 8200000
        })
        assert record.source_id == 'abc'
        assert record.song_name == '十年'
        assert record.singer_name == '陈奕迅'
        assert record.album_name == '黑白灰'
        assert record.duration == 205
        assert record.file_size == 8200000

    def test_alias_priority(self):
        """The first alias present wins"""
        record = normalize_candidate({'FileHash': 'first', 'hash': 'second', 'FileName': 'File', 'SongName': 'Song'})
        assert record.source_id == 'first'
        assert record.song_name == 'File'

    def test_missing_fields_default(self):
        """Optional fields default to empty values"""
        record = normalize_candidate({'hash': 'abc', 'name': 'Song'})
        assert record.singer_name == ''
        assert record.album_name == ''
        assert record.duration == 0
        assert record.file_size == 0

    def test_unusable_items(self):
        """Items without hash or name are dropped"""
        assert normalize_candidate({'SongName': 'No hash'}) is None
        assert normalize_candidate({'hash': 'abc'}) is None
        assert normalize_candidate("not a dict") is None
        assert normalize_candidate(None) is None

    def test_response_shapes(self):
        """Song arrays are found in every known location"""
        songs = [{'hash': 'a', 'name': 'A'}]
        assert extract_song_list({'data': {'lists': songs}}) == songs
        assert extract_song_list({'data': {'songs': songs}}) == songs
        assert extract_song_list({'data': songs}) == songs
        assert extract_song_list({'songs': songs}) == songs
        assert extract_song_list({'lists': songs}) == songs
        assert extract_song_list({'data': {}}) == []
        assert extract_song_list([]) == []

    def test_normalize_keeps_order(self, kugou_search_payload):
        """Upstream order is preserved and junk skipped"""
        kugou_search_payload['data']['lists'].insert(1, {'junk': True})
        records = normalize_candidates(kugou_search_payload)
        assert [record.source_id for record in records] == ['HASHLIVE', 'HASHSTUDIO', 'HASHCOVER']

    def test_accepted_response(self):
        """status 1, code 0 or a data key make a response acceptable"""
        assert is_accepted_response({'status': 1})
        assert is_accepted_response({'code': 0})
        assert is_accepted_response({'data': []})
        assert not is_accepted_response({'status': 0, 'error': 'bad'})
        assert not is_accepted_response("html page")

    def test_play_url_locations(self):
        """Playable URLs are read from every known field"""
        assert extract_play_url({'url': ['https://a/1.mp3', 'https://a/2.mp3']}) == 'https://a/1.mp3'
        assert extract_play_url({'url': 'https://a/1.mp3'}) == 'https://a/1.mp3'
        assert extract_play_url({'url': [], 'backupUrl': ['https://b/1.mp3']}) == 'https://b/1.mp3'
        assert extract_play_url({'data': {'play_url': 'https://c/1.mp3'}}) == 'https://c/1.mp3'
        assert extract_play_url({'data': {'url': 'https://d/1.mp3'}}) == 'https://d/1.mp3'
        assert extract_play_url({'play_url': 'https://e/1.mp3'}) == 'https://e/1.mp3'
        assert extract_play_url({'status': 1}) is None


class TestKugouSearch:
    """Test KugouSource.search"""

    def test_search_returns_candidates(self, kugou_search_payload):
        session = Mock()
        session.get.return_value = json_response(kugou_search_payload)
        source = KugouSource("http://localhost:3000/", logged_in_store(), session=session)

        candidates = source.search("陈奕迅 十年")

        assert [c.source_id for c in candidates] == ['HASHLIVE', 'HASHSTUDIO', 'HASHCOVER']
        args, kwargs = session.get.call_args
        assert args[0] == "http://localhost:3000/search"
        assert kwargs['params']['keywords'] == "陈奕迅 十年"
        assert kwargs['params']['keyword'] == "陈奕迅 十年"
        assert kwargs['params']['pagesize'] == 20
        assert kwargs['headers']['Cookie'] == "token=abc; userid=42"

    def test_falls_through_endpoints(self, kugou_search_payload):
        """A failing endpoint is skipped"""
        session = Mock()
        session.get.side_effect = [
            requests.ConnectionError("refused"),
            json_response({'status': 0, 'error': 'unsupported'}),
            json_response(kugou_search_payload),
        ]
        source = KugouSource("http://localhost:3000", logged_in_store(), session=session)

        assert len(source.search("十年")) == 3
        urls = [c.args[0] for c in session.get.call_args_list]
        assert urls == [
            "http://localhost:3000/search",
            "http://localhost:3000/search/song",
            "http://localhost:3000/cloudsearch",
        ]

    def test_empty_answer_is_not_an_error(self):
        session = Mock()
        session.get.return_value = json_response({'status': 1, 'data': {'lists': []}})
        source = KugouSource("http://localhost:3000", logged_in_store(), session=session)

        assert source.search("nothing") == []
        assert session.get.call_count == 1

    def test_all_endpoints_fail(self):
        session = Mock()
        session.get.side_effect = requests.Timeout("slow")
        source = KugouSource("http://localhost:3000", logged_in_store(), session=session)

        with pytest.raises(TransientError):
            source.search("十年")

    def test_not_logged_in(self):
        session = Mock()
        source = KugouSource("http://localhost:3000", logged_in_store(cookies=""), session=session)

        with pytest.raises(TransientError):
            source.search("十年")
        session.get.assert_not_called()


class TestKugouPlayUrl:
    """Test KugouSource.get_play_url status handling"""

    def make_source(self, *responses):
        session = Mock()
        session.get.side_effect = list(responses)
        return KugouSource("http://localhost:3000", logged_in_store(), session=session), session

    def test_status_ok(self):
        source, session = self.make_source(json_response({'status': 1, 'url': ['https://cdn/a.mp3']}))
        assert source.get_play_url("HASH") == 'https://cdn/a.mp3'
        assert session.get.call_args.kwargs['params'] == {'hash': 'HASH'}

    def test_status_restricted(self):
        source, _ = self.make_source(json_response({'status': 2}))
        with pytest.raises(AccessRestrictedError) as exc_info:
            source.get_play_url("HASH")
        assert str(exc_info.value) == "AccessRestricted"
        assert exc_info.value.failure is FailureKind.ACCESS_RESTRICTED
        assert exc_info.value.retryable is False

    def test_status_unavailable(self):
        source, _ = self.make_source(json_response({'status': 0}))
        with pytest.raises(NotFoundError):
            source.get_play_url("HASH")

    def test_second_endpoint_used(self):
        """Without a URL from /song/url the newer endpoint is asked"""
        source, session = self.make_source(
            json_response({'status': 1}),
            json_response({'status': 1, 'data': {'play_url': 'https://cdn/b.mp3'}})
        )
        assert source.get_play_url("HASH") == 'https://cdn/b.mp3'
        assert session.get.call_args.args[0] == "http://localhost:3000/song/url/new"

    def test_no_url_anywhere(self):
        source, _ = self.make_source(json_response({'status': 1}), json_response({'status': 1}))
        with pytest.raises(NotFoundError):
            source.get_play_url("HASH")

    def test_network_failure(self):
        source, _ = self.make_source(requests.ConnectionError("refused"))
        with pytest.raises(TransientError):
            source.get_play_url("HASH")


class TestTransport:
    """Test streaming with ordered retrieval strategies"""

    def test_forbidden_falls_back_to_device_headers(self, temp_dir):
        """A 403 moves to the next strategy"""
        session = Mock()
        session.get.side_effect = [stream_response(403), stream_response(200, [b"abc", b"", b"def"])]
        output = temp_dir / "song.mp3"

        written = stream_to_file("https://cdn/a.mp3", output, default_strategies("HASH"), session=session)

        assert written == 6
        assert output.read_bytes() == b"abcdef"
        first, second = session.get.call_args_list
        assert first.kwargs['headers']['X-Hash'] == "HASH"
        assert second.kwargs['headers'] == {'User-Agent': DEVICE_USER_AGENT}
        assert first.kwargs['stream'] is True

    def test_last_strategy_forbidden(self, temp_dir):
        """403 from every strategy is access-restricted, not worth another attempt"""
        session = Mock()
        session.get.side_effect = [stream_response(403), stream_response(403)]
        output = temp_dir / "song.mp3"

        with pytest.raises(AccessRestrictedError):
            stream_to_file("https://cdn/a.mp3", output, default_strategies(), session=session)
        assert not output.exists()
        assert session.get.call_count == 2

    def test_server_error_does_not_switch_strategy(self, temp_dir):
        session = Mock()
        session.get.side_effect = [stream_response(500)]

        with pytest.raises(TransientError):
            stream_to_file("https://cdn/a.mp3", temp_dir / "song.mp3", default_strategies(), session=session)
        assert session.get.call_count == 1

    def test_interrupted_stream_leaves_nothing(self, temp_dir):
        """A broken connection mid-body leaves neither the file nor a partial"""
        response = stream_response(200)
        response.iter_content.side_effect = requests.ConnectionError("reset")
        session = Mock()
        session.get.side_effect = [response]
        output = temp_dir / "song.mp3"

        with pytest.raises(TransientError):
            stream_to_file("https://cdn/a.mp3", output, default_strategies(), session=session)
        assert list(temp_dir.iterdir()) == []

    def test_source_download_uses_hash(self, temp_dir):
        session = Mock()
        session.get.side_effect = [stream_response(200, [b"data"])]
        source = KugouSource("http://localhost:3000", logged_in_store(), session=session)

        assert source.download("https://cdn/a.mp3", temp_dir / "song.mp3", "HASH") == 4
        assert session.get.call_args.kwargs['headers']['X-Hash'] == "HASH"


class TestKugouAuthStore:
    """Test session storage and QR login"""

    NOW = 1_700_000_000.0

    def make_store(self, temp_dir, session=None, **kwargs):
        return KugouAuthStore(
            temp_dir / "auth" / "kugou-auth.json",
            session=session or Mock(),
            clock=lambda: self.NOW,
            sleep=Mock(),
            **kwargs
        )

    def write_session(self, store, login_time, expires_in=None):
        store.auth_file.parent.mkdir(parents=True, exist_ok=True)
        data = {'userId': '42', 'token': 'tok', 'cookies': 'token=tok', 'loginTime': login_time}
        if expires_in is not None:
            data['expiresIn'] = expires_in
        store.auth_file.write_text(json.dumps(data), encoding='utf-8')

    def test_missing_file(self, temp_dir):
        store = self.make_store(temp_dir)
        assert store.load() is None
        assert store.is_logged_in() is False
        assert store.cookies() == ""

    def test_valid_session(self, temp_dir):
        store = self.make_store(temp_dir)
        self.write_session(store, int(self.NOW * 1000) - DAY_MS)

        stored = store.load()
        assert stored.user_id == '42'
        assert store.cookies() == 'token=tok'

    def test_expired_with_default_ttl(self, temp_dir):
        store = self.make_store(temp_dir, ttl_days=7)
        self.write_session(store, int(self.NOW * 1000) - 8 * DAY_MS)
        assert store.load() is None

    def test_expiry_from_file(self, temp_dir):
        store = self.make_store(temp_dir, ttl_days=7)
        self.write_session(store, int(self.NOW * 1000) - 2 * DAY_MS, expires_in=DAY_MS)
        assert store.is_logged_in() is False

    def test_corrupt_file(self, temp_dir):
        store = self.make_store(temp_dir)
        store.auth_file.parent.mkdir(parents=True)
        store.auth_file.write_text("{not json", encoding='utf-8')
        assert store.load() is None

    def test_save_round_trip_keys(self, temp_dir):
        store = self.make_store(temp_dir)
        store.save(KugouSession('42', 'tok', 'token=tok', int(self.NOW * 1000), DAY_MS))

        data = json.loads(store.auth_file.read_text(encoding='utf-8'))
        assert set(data) == {'userId', 'token', 'cookies', 'loginTime', 'expiresIn'}
        assert store.is_logged_in() is True

    def test_logout(self, temp_dir):
        store = self.make_store(temp_dir)
        self.write_session(store, int(self.NOW * 1000))
        assert store.logout() is True
        assert not store.auth_file.exists()
        assert store.logout() is True

    def test_qr_login(self, temp_dir):
        """Key, QR image, scanned, then confirmed"""
        session = Mock()
        session.get.side_effect = [
            json_response({'status': 1, 'data': {'qrcode': 'KEY'}}),
            json_response({'status': 1, 'data': {'url': 'https://qr/KEY', 'base64': 'data:image/png;base64,aGVsbG8='}}),
            json_response({'status': 1, 'data': {'status': 1}}),
            json_response({'status': 1, 'data': {'status': 2}}),
            json_response({'status': 1, 'data': {'status': 4, 'userid': 7, 'token': 'tok', 'cookie': 'c=1'}}),
        ]
        store = self.make_store(temp_dir, session=session)
        wait = Mock()

        assert store.login(wait_for_scan=wait) is True

        wait.assert_called_once()
        stored = store.load()
        assert stored.user_id == '7'
        assert stored.token == 'tok'
        assert stored.cookies == 'c=1'
        assert stored.login_time == int(self.NOW * 1000)
        assert (store.auth_file.parent / "kugou-qrcode.png").read_bytes() == b"hello"
        assert store._sleep.call_count == 2

    def test_qr_login_top_level_code(self, temp_dir):
        session = Mock()
        session.get.side_effect = [
            json_response({'status': 1, 'data': {'qrcode': 'KEY'}}),
            json_response({'status': 1, 'data': {}}),
            json_response({'code': 803, 'userId': 'u1', 'token': 't1', 'cookies': 'c=2'}),
        ]
        store = self.make_store(temp_dir, session=session)

        assert store.login() is True
        assert store.load().user_id == 'u1'

    def test_qr_expired(self, temp_dir):
        session = Mock()
        session.get.side_effect = [
            json_response({'status': 1, 'data': {'qrcode': 'KEY'}}),
            json_response({'status': 1, 'data': {}}),
            json_response({'code': 805}),
        ]
        store = self.make_store(temp_dir, session=session)

        assert store.login() is False
        assert not store.auth_file.exists()

    def test_qr_timeout(self, temp_dir):
        session = Mock()
        session.get.side_effect = [
            json_response({'status': 1, 'data': {'qrcode': 'KEY'}}),
            json_response({'status': 1, 'data': {}}),
        ] + [json_response({'status': 1, 'data': {'status': 1}}) for _ in range(3)]
        store = self.make_store(temp_dir, session=session, max_checks=3)

        assert store.login() is False

    def test_poll_raises_on_expiry(self, temp_dir):
        session = Mock()
        session.get.return_value = json_response({'status': 1, 'data': {'status': 0}})
        store = self.make_store(temp_dir, session=session)

        with pytest.raises(KugouAuthError):
            store._poll_qr_status('KEY')


class TestKugouApiService:
    """Test service detection and startup"""

    def test_is_running(self):
        session = Mock()
        session.get.return_value = Mock(status_code=200)
        service = KugouApiService("http://localhost:3000", session=session)

        assert service.is_running() is True
        assert session.get.call_args.args[0] == "http://localhost:3000/"
        assert session.get.call_args.kwargs['timeout'] == 3

    def test_not_running(self):
        session = Mock()
        session.get.side_effect = requests.ConnectionError("refused")
        service = KugouApiService("http://localhost:3000", session=session)

        assert service.is_running() is False
        assert service.ensure_running(auto_start=False) is False

    def test_start_missing_directory(self, temp_dir):
        session = Mock()
        session.get.side_effect = requests.ConnectionError("refused")
        service = KugouApiService(api_directory=str(temp_dir / "missing"), session=session)

        with patch('songfetch.sources.kugou_service.subprocess.Popen') as popen:
            assert service.ensure_running(auto_start=True) is False
        popen.assert_not_called()

    def test_start_spawns_command(self, temp_dir):
        session = Mock()
        session.get.side_effect = [requests.ConnectionError("refused"), requests.ConnectionError("refused"),
                                   Mock(status_code=200)]
        service = KugouApiService(api_directory=str(temp_dir), start_command="npm run dev",
                                  session=session, sleep=Mock())

        with patch('songfetch.sources.kugou_service.subprocess.Popen') as popen, \
                patch('songfetch.sources.kugou_service.atexit.register'):
            popen.return_value.poll.return_value = None
            assert service.start() is True

        assert popen.call_args.args[0] == ['npm', 'run', 'dev']
        assert popen.call_args.kwargs['cwd'] == str(temp_dir)

    def test_stop_terminates_started_process(self, temp_dir):
        service = KugouApiService(api_directory=str(temp_dir), session=Mock())
        process = Mock()
        process.poll.return_value = None
        service._process = process

        service.stop()

        process.terminate.assert_called_once()
        process.wait.assert_called_once_with(timeout=5)
        assert service._process is None

    def test_stop_without_process(self):
        service = KugouApiService(session=Mock())
        service.stop()
        assert service._process is None

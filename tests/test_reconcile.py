"""Test tag reconciliation"""

from unittest.mock import Mock

import musicbrainzngs

from songfetch.core.models import DiscoveredMetadata, TagProposal, TrackMeta
from songfetch.metadata.reconcile import (
    MetadataReconciler,
    MusicBrainzCatalog,
    extract_reference_fields,
)


def recording(title, artists, releases=()):
    return {
        'title': title,
        'artist-credit': [{'artist': {'name': name}, 'name': name} for name in artists],
        'release-list': list(releases),
    }


def mock_client(isrc_recordings=None, isrc_search=None, text_search=None, isrc_error=None):
    client = Mock()
    if isrc_error is not None:
        client.get_recordings_by_isrc.side_effect = isrc_error
    else:
        client.get_recordings_by_isrc.return_value = {'isrc': {'recording-list': isrc_recordings or []}}
    client.search_recordings.side_effect = lambda **kwargs: {
        'recording-list': (isrc_search if 'isrc' in kwargs else text_search) or []
    }
    return client


class TestDiscoveredNames:
    """Test proposals from names found on Kugou"""

    def test_original_language_names(self, track_meta):
        """Differing title and artist are proposed, the album kept when empty"""
        reconciler = MetadataReconciler()
        proposal = reconciler.propose(track_meta, DiscoveredMetadata(title="十年", artist="陈奕迅"))

        assert proposal == TagProposal(title="十年", artist="陈奕迅")

    def test_album_included_when_present(self, track_meta):
        proposal = MetadataReconciler().propose(
            track_meta, DiscoveredMetadata(title="十年", artist="陈奕迅", album="黑白灰")
        )
        assert proposal.album == "黑白灰"

    def test_identical_names(self, track_meta):
        """No difference, no catalog: nothing to propose"""
        discovered = DiscoveredMetadata(title=" Ten Years ", artist="Eason Chan", album="Black White Grey")
        assert MetadataReconciler().propose(track_meta, discovered) is None

    def test_case_difference_is_a_change(self, track_meta):
        proposal = MetadataReconciler().propose(track_meta, DiscoveredMetadata(title="ten years", artist="Eason Chan"))
        assert proposal == TagProposal(title="ten years")

    def test_idempotent(self, track_meta):
        """Applying a proposal and reconciling again proposes nothing"""
        discovered = DiscoveredMetadata(title="十年", artist="陈奕迅", album="黑白灰")
        reconciler = MetadataReconciler()
        proposal = reconciler.propose(track_meta, discovered)

        corrected = TrackMeta(**{**track_meta.__dict__, **proposal.as_dict()})
        assert reconciler.propose(corrected, discovered) is None

    def test_discovered_names_skip_catalog(self, track_meta):
        """A Kugou-based proposal makes the MusicBrainz lookup unnecessary"""
        client = mock_client()
        reconciler = MetadataReconciler(MusicBrainzCatalog(client=client))

        reconciler.propose(track_meta, DiscoveredMetadata(title="十年", artist="陈奕迅"))

        client.get_recordings_by_isrc.assert_not_called()
        client.search_recordings.assert_not_called()


class TestMusicBrainz:
    """Test proposals from the MusicBrainz reference catalog"""

    def test_user_agent_set(self):
        client = mock_client()
        MusicBrainzCatalog("songfetch", "0.4.0", "https://example.org", client=client)
        client.set_useragent.assert_called_once_with("songfetch", "0.4.0", "https://example.org")

    def test_isrc_lookup(self, track_meta):
        client = mock_client(isrc_recordings=[recording(
            "十年", ["陈奕迅"], [{'title': '黑白灰', 'status': 'Official'}]
        )])
        reconciler = MetadataReconciler(MusicBrainzCatalog(client=client))

        proposal = reconciler.propose(track_meta)

        assert proposal == TagProposal(title="十年", artist="陈奕迅", album="黑白灰", album_artist="陈奕迅")
        client.get_recordings_by_isrc.assert_called_once_with("HKA010300123", includes=['artists', 'releases'])

    def test_unknown_isrc_falls_back_to_text_search(self, track_meta):
        client = mock_client(
            isrc_error=musicbrainzngs.ResponseError("404"),
            text_search=[recording("Ten Years", ["Eason Chan"], [{'title': 'Black White Grey'}])]
        )
        reconciler = MetadataReconciler(MusicBrainzCatalog(client=client))

        assert reconciler.propose(track_meta) is None
        client.search_recordings.assert_any_call(isrc="HKA010300123", limit=5)
        client.search_recordings.assert_any_call(artist="Eason Chan", recording="Ten Years", limit=5)

    def test_isrc_network_error_still_searches_text(self, track_meta):
        """A failing ISRC lookup does not stop the artist/title search"""
        client = mock_client(
            isrc_error=musicbrainzngs.NetworkError("timeout"),
            text_search=[recording("十年", ["陈奕迅"])]
        )
        reconciler = MetadataReconciler(MusicBrainzCatalog(client=client))

        assert reconciler.propose(track_meta) == TagProposal(title="十年", artist="陈奕迅", album_artist="陈奕迅")
        client.search_recordings.assert_any_call(artist="Eason Chan", recording="Ten Years", limit=5)

    def test_isrc_search_error_still_searches_text(self, track_meta):
        client = mock_client()

        def search(**kwargs):
            if 'isrc' in kwargs:
                raise musicbrainzngs.NetworkError("reset by peer")
            return {'recording-list': [recording("十年", ["陈奕迅"])]}

        client.search_recordings.side_effect = search
        reconciler = MetadataReconciler(MusicBrainzCatalog(client=client))

        assert reconciler.propose(track_meta) == TagProposal(title="十年", artist="陈奕迅", album_artist="陈奕迅")

    def test_track_without_isrc(self):
        client = mock_client(text_search=[recording("Song", ["Artist"])])
        reconciler = MetadataReconciler(MusicBrainzCatalog(client=client))

        assert reconciler.propose(TrackMeta(title="Song", artist="Artist")) is None
        client.get_recordings_by_isrc.assert_not_called()

    def test_service_error_gives_no_proposal(self, track_meta):
        client = mock_client()
        client.search_recordings.side_effect = musicbrainzngs.NetworkError("offline")
        client.get_recordings_by_isrc.side_effect = musicbrainzngs.NetworkError("offline")
        reconciler = MetadataReconciler(MusicBrainzCatalog(client=client))

        assert reconciler.propose(track_meta) is None

    def test_no_recordings(self, track_meta):
        reconciler = MetadataReconciler(MusicBrainzCatalog(client=mock_client()))
        assert reconciler.propose(track_meta) is None


class TestReferenceFields:
    """Test MusicBrainz recording parsing"""

    def test_joined_artists_and_official_release(self):
        data = {
            'title': 'Song ',
            'artist-credit': [{'name': 'A', 'artist': {'name': 'A'}}, ' feat. ', {'artist': {'name': 'B'}}],
            'release-list': [{'title': 'Bootleg', 'status': 'Bootleg'}, {'title': 'Album', 'status': 'Official'}],
        }
        assert extract_reference_fields(data) == {
            'title': 'Song', 'artist': 'A, B', 'album': 'Album', 'album_artist': 'A, B'
        }

    def test_empty_recording(self):
        assert extract_reference_fields({}) == {'title': '', 'artist': '', 'album': '', 'album_artist': ''}

"""
Candidate source adapters

YouTubeSource (rank 1) downloads the single best yt-dlp search hit.
KugouSource (rank 2) searches the Kugou catalog through a local
KuGouMusicApi service and fetches a chosen candidate.
"""

from .youtube import YouTubeSource
from .kugou import KugouSource
from .kugou_service import KugouApiService
from .normalize import normalize_candidate, normalize_candidates, extract_song_list
from .transport import RetrievalStrategy, default_strategies, stream_to_file

__all__ = [
    'YouTubeSource',
    'KugouSource',
    'KugouApiService',
    'normalize_candidate',
    'normalize_candidates',
    'extract_song_list',
    'RetrievalStrategy',
    'default_strategies',
    'stream_to_file',
]

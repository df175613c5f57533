"""
songfetch: Download Spotify tracks, albums and playlists from multiple audio sources

songfetch reads track metadata from Spotify and resolves every track to real audio
from a ranked chain of sources, then tags the result with corrected metadata.

## Core Architecture

**Configuration (`songfetch/config/`)**
- YAML and environment based settings, one dataclass per section
- Kugou session storage with QR-code login and the local API service manager

**Sources (`songfetch/sources/`)**
- YouTube (yt-dlp `ytsearch1:` search-and-fetch), the rank-1 general source
- Kugou (local KuGouMusicApi service), the rank-2 regional catalog
- Defensive normalization of loosely shaped catalog payloads
- Ordered retrieval strategies for anti-hotlinking protected audio URLs

**Resolver (`songfetch/resolver/`)**
- Match scorer ranking catalog candidates against the wanted artist/title
- Resolution policy choosing the provider try-order
- Download orchestrator owning retries and failure classification

**Metadata (`songfetch/metadata/`, `songfetch/audio/`)**
- Reconciliation of Spotify tags with catalog-discovered or MusicBrainz names
- Mutagen-based tag writing with album artwork

**Pipeline (`songfetch/pipeline/`)**
- Strictly sequential batch processing with statistics and a failed-tracks log

## Quick Start

```bash
pip install -e .
export SPOTIFY_CLIENT_ID=... SPOTIFY_CLIENT_SECRET=...

# YouTube only
songfetch download "https://open.spotify.com/playlist/37i9dQZF1DXcBWIGoYBM5M"

# Use Kugou first (requires the local API service and a login)
songfetch kugou login
songfetch download "https://open.spotify.com/album/..." --prefer kugou
```
"""

__version__ = "0.4.0"

__author__ = "songfetch contributors"

__description__ = "Download Spotify tracks from YouTube and Kugou with metadata reconciliation"

__all__ = [
    "__version__",
    "__author__",
    "__description__",
]

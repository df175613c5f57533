"""
songfetch configuration

Settings are grouped into dataclass sections (Spotify credentials, download
and retry budget, yt-dlp, the Kugou API service, tagging and reconciliation,
MusicBrainz identification, logging, network and storage locations). They are
read from YAML and then overridden from the environment, which ``.env`` files
feed through python-dotenv.

The resolution engine never reads the global settings itself: the CLI builds a
Settings instance and hands the relevant sections to each component's
constructor.
"""

import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


@dataclass
class SpotifyConfig:
    """
    Spotify API credentials

    Track, album and playlist metadata is read with the client-credentials
    flow, so only an application id and secret are needed.
    """
    client_id: str = ""
    client_secret: str = ""


@dataclass
class DownloadConfig:
    """
    Download behaviour and resolution budget

    ``max_retries_per_provider`` is the exact number of attempts made against
    each provider before moving on. ``retry_delay`` is scaled linearly by the
    attempt number.
    """
    output_directory: str = "~/Music/songfetch"
    format: str = "mp3"
    bitrate: int = 320
    preferred_provider: str = "youtube"  # youtube, kugou
    max_retries_per_provider: int = 2
    retry_delay: float = 1.0
    inter_track_delay: float = 1.0
    skip_existing: bool = True
    failed_tracks_file: str = "failed_tracks.json"


@dataclass
class YouTubeConfig:
    """
    yt-dlp options for the general source

    The search prefix decides how many results yt-dlp considers; the
    resolver relies on ``ytsearch1`` returning a single best-effort match.
    """
    search_prefix: str = "ytsearch1"
    cookies_file: str = ""
    socket_timeout: int = 30


@dataclass
class KugouConfig:
    """
    Kugou catalog configuration

    Kugou is reached through a locally running KuGouMusicApi service. A
    logged-in session (QR login) is required for search and song URLs.
    """
    enabled: bool = True
    api_url: str = "http://localhost:3000"
    api_directory: str = "KuGouMusicApi"
    api_start_command: str = "npm run dev"
    auto_start_api: bool = False
    startup_timeout: int = 30
    auth_file: str = "~/.songfetch/kugou-auth.json"
    session_ttl_days: int = 7
    search_timeout: int = 15
    page_size: int = 20
    download_timeout: int = 60
    allow_low_score_fallback: bool = True
    qr_poll_interval: float = 2.0
    qr_max_checks: int = 90


@dataclass
class MetadataConfig:
    """
    Tagging and reconciliation configuration

    With ``reconcile`` enabled, names discovered on Kugou (or found on
    MusicBrainz) replace the Spotify names when they differ.
    """
    reconcile: bool = True
    musicbrainz_enabled: bool = True
    include_album_art: bool = True
    id3_version: str = "2.4"


@dataclass
class MusicBrainzConfig:
    """User agent identification required by the MusicBrainz web service"""
    app_name: str = "songfetch"
    app_version: str = "0.4.0"
    contact: str = "https://github.com/songfetch/songfetch"


@dataclass
class LoggingConfig:
    """
    Console and log file output

    ``level`` applies to the file; the console always shows warnings and
    user-facing messages. ``max_size`` accepts values such as "10MB".
    """
    level: str = "INFO"
    file: str = "songfetch.log"
    max_size: str = "10MB"
    backup_count: int = 3
    console_output: bool = True
    colored_output: bool = True


@dataclass
class NetworkConfig:
    """HTTP defaults for artwork downloads and other plain requests"""
    user_agent: str = "songfetch/0.4"
    request_timeout: int = 30


@dataclass
class SecurityConfig:
    """Where configuration and session files are stored"""
    config_directory: str = "~/.songfetch/"


# (environment variable, section, field); values from the environment win over YAML
ENV_OVERRIDES = (
    ('SPOTIFY_CLIENT_ID', 'spotify', 'client_id'),
    ('SPOTIFY_CLIENT_SECRET', 'spotify', 'client_secret'),
    ('DOWNLOAD_OUTPUT_DIR', 'download', 'output_directory'),
    ('SONGFETCH_PREFER', 'download', 'preferred_provider'),
    ('KUGOU_API_URL', 'kugou', 'api_url'),
    ('YTDLP_COOKIES', 'youtube', 'cookies_file'),
)

SUPPORTED_FORMATS = ('mp3', 'flac', 'm4a')
PROVIDER_NAMES = ('youtube', 'kugou')


def default_config_files() -> List[Path]:
    """YAML locations tried when no explicit path is given, in order"""
    return [
        Path.home() / ".songfetch" / "config.yaml",
        Path("config") / "config.yaml",
        Path("config.yaml"),
    ]


class Settings:
    """
    All songfetch configuration sections

    The first readable YAML file wins; environment variables are applied on
    top of it. Keys a section does not define are ignored, as are sections
    songfetch does not know about.
    """

    SECTIONS = (
        'spotify', 'download', 'youtube', 'kugou', 'metadata',
        'musicbrainz', 'logging', 'network', 'security',
    )

    def __init__(self, config_path: Optional[str] = None):
        """
        Args:
            config_path: YAML file tried before the default locations
        """
        self.config_path = config_path
        self.loaded_from: Optional[Path] = None

        self.spotify = SpotifyConfig()
        self.download = DownloadConfig()
        self.youtube = YouTubeConfig()
        self.kugou = KugouConfig()
        self.metadata = MetadataConfig()
        self.musicbrainz = MusicBrainzConfig()
        self.logging = LoggingConfig()
        self.network = NetworkConfig()
        self.security = SecurityConfig()

        self.update(self._read_first_config())
        self._apply_environment()

    def _read_first_config(self) -> Dict[str, Any]:
        candidates = default_config_files()
        if self.config_path:
            candidates.insert(0, Path(self.config_path))

        for candidate in candidates:
            if not candidate.is_file():
                continue
            try:
                data = yaml.safe_load(candidate.read_text(encoding='utf-8'))
            except (OSError, yaml.YAMLError) as e:
                logger.warning("Skipping unreadable config %s: %s", candidate, e)
                continue
            self.loaded_from = candidate
            return data if isinstance(data, dict) else {}
        return {}

    def update(self, data: Dict[str, Any]) -> None:
        """Merge a ``{section: {key: value}}`` mapping into the known sections"""
        for section_name, values in data.items():
            if section_name not in self.SECTIONS or not isinstance(values, dict):
                continue
            section = getattr(self, section_name)
            known = {f.name for f in fields(section)}
            for key, value in values.items():
                if key in known:
                    setattr(section, key, value)

    def _apply_environment(self) -> None:
        for env_var, section_name, key in ENV_OVERRIDES:
            value = os.environ.get(env_var)
            if value:
                setattr(getattr(self, section_name), key, value)

    def ensure_directories(self) -> None:
        """
        Create the configuration and output directories

        A directory that cannot be created is only logged, so a read-only home
        does not stop downloads into another output directory.
        """
        for directory in (self.get_config_directory(), self.get_output_directory()):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.warning("Could not create %s: %s", directory, e)

    def get_output_directory(self) -> Path:
        return Path(self.download.output_directory).expanduser()

    def get_config_directory(self) -> Path:
        return Path(self.security.config_directory).expanduser()

    def get_kugou_auth_path(self) -> Path:
        return Path(self.kugou.auth_file).expanduser()

    def get_log_file_path(self) -> Optional[Path]:
        """
        Log file location, or None when ``logging.file`` is empty

        Relative names resolve inside the configuration directory.
        """
        if not self.logging.file:
            return None
        log_path = Path(self.logging.file).expanduser()
        return log_path if log_path.is_absolute() else self.get_config_directory() / log_path

    def as_dict(self, include_secrets: bool = False) -> Dict[str, Dict[str, Any]]:
        data = {name: asdict(getattr(self, name)) for name in self.SECTIONS}
        if not include_secrets:
            data['spotify'] = {key: "" for key in data['spotify']}
        return data

    def save_config(self, path: Optional[str] = None) -> Path:
        """
        Write the current configuration as YAML, without Spotify credentials

        Args:
            path: Destination, ``config.yaml`` in the config directory by default

        Returns:
            The file written
        """
        target = Path(path) if path else self.get_config_directory() / "config.yaml"
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, 'w', encoding='utf-8') as f:
            yaml.safe_dump(self.as_dict(), f, default_flow_style=False, indent=2, allow_unicode=True)
        return target

    def validate(self) -> List[str]:
        """
        Check the configuration before a run

        Returns:
            Problems found, one message each; empty when usable
        """
        download = self.download
        problems = []

        if not (self.spotify.client_id and self.spotify.client_secret):
            problems.append("Spotify client_id and client_secret are required")
        if download.format not in SUPPORTED_FORMATS:
            problems.append(f"Unsupported audio format: {download.format}")
        if download.preferred_provider not in PROVIDER_NAMES:
            problems.append(f"Invalid preferred provider: {download.preferred_provider}")
        if int(download.max_retries_per_provider) < 1:
            problems.append("download.max_retries_per_provider must be at least 1")
        if min(float(download.retry_delay), float(download.inter_track_delay)) < 0:
            problems.append("Delays cannot be negative")
        if not self.kugou.api_url.startswith(('http://', 'https://')):
            problems.append(f"Invalid Kugou API URL: {self.kugou.api_url}")

        return problems

    def __str__(self) -> str:
        kugou = 'on' if self.kugou.enabled else 'off'
        return (f"Settings(format={self.download.format}, output={self.download.output_directory}, "
                f"prefer={self.download.preferred_provider}, kugou={kugou})")


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Process-wide Settings, loaded on first use

    Only the CLI calls this; library components are given their
    configuration explicitly.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings(config_path: Optional[str] = None) -> Settings:
    """Replace the process-wide Settings, optionally from a specific file"""
    global _settings
    _settings = Settings(config_path)
    return _settings

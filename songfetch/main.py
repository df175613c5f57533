"""
Main CLI interface for songfetch

The CLI is built using Click framework and provides:
- ``download``: a Spotify track, album or playlist
- ``get``: a single song by artist and title, without Spotify
- ``kugou``: QR login, logout and status of the Kugou catalog
- ``config``: show the active configuration
- ``doctor``: environment diagnostics

All wiring happens here. The library components receive their configuration
through their constructors; this module is the only one that reads the global
settings.
"""

import functools
import shutil
import sys
from pathlib import Path

import click

from . import __version__
from .config.settings import get_settings, reload_settings
from .core.exceptions import SongfetchError
from .core.models import ProviderId, TrackMeta
from .utils.helpers import format_duration, format_file_size, sanitize_filename
from .utils.logger import configure_from_settings, get_current_log_file, get_logger
from .utils.validation import parse_spotify_url, validate_provider_name, validate_spotify_url

logger = get_logger(__name__)


def print_banner():
    """Show the name and tagline above the help text"""
    title = click.style(f" songfetch {__version__} ", fg='black', bg='green', bold=True)
    click.echo(f"\n{title}  Spotify metadata, YouTube audio, Kugou fallback\n")


def handle_error(func):
    """
    Turn exceptions escaping a command into an exit status

    Known songfetch errors print their message only; anything else is logged
    with its traceback at debug level. Ctrl-C exits with 130, errors with 1.
    """
    @functools.wraps(func)
    def run_command(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            click.echo(click.style("\nCancelled", fg='yellow'))
            sys.exit(130)
        except SongfetchError as e:
            logger.error(f"{func.__name__}: {e}")
            click.echo(click.style(f"Error: {e}", fg='red'), err=True)
            sys.exit(1)
        except Exception as e:
            logger.debug(f"{func.__name__} crashed", exc_info=True)
            click.echo(click.style(f"Unexpected error: {e}", fg='red'), err=True)
            sys.exit(1)
    return run_command


def _kugou_components(settings):
    from .config.kugou_auth import KugouAuthStore
    from .sources.kugou_service import KugouApiService

    return KugouAuthStore.from_settings(settings), KugouApiService.from_settings(settings)


def build_processor(settings, secondary_enabled=None, download_options=None):
    """
    Wire the orchestrator, reconciler and tagger for one run

    Args:
        settings: Settings instance with CLI overrides applied
        secondary_enabled: Overrides ``kugou.enabled``
        download_options: Per-call overrides for ``download_audio``

    Returns:
        TrackProcessor
    """
    from .audio.tagger import CoverArtFetcher, TagWriter
    from .metadata.reconcile import MetadataReconciler, MusicBrainzCatalog
    from .pipeline.processor import TrackProcessor
    from .resolver.orchestrator import build_orchestrator

    auth_store, api_service = _kugou_components(settings)
    orchestrator = build_orchestrator(
        settings,
        auth_store=auth_store,
        api_service=api_service,
        secondary_enabled=secondary_enabled
    )

    reconciler = None
    if settings.metadata.reconcile:
        catalog = MusicBrainzCatalog.from_settings(settings) if settings.metadata.musicbrainz_enabled else None
        reconciler = MetadataReconciler(catalog)

    cover_fetcher = CoverArtFetcher.from_settings(settings) if settings.metadata.include_album_art else None

    return TrackProcessor(
        orchestrator=orchestrator,
        tag_writer=TagWriter(settings.metadata.id3_version),
        reconciler=reconciler,
        cover_fetcher=cover_fetcher,
        audio_format=settings.download.format,
        skip_existing=settings.download.skip_existing,
        download_options=download_options
    )


def _print_stats(stats):
    click.echo("\nDownload summary:")
    click.echo(f"   Total: {stats.total_tracks}")
    click.echo(f"   Downloaded: {stats.downloaded_tracks}")
    click.echo(f"   Skipped: {stats.skipped_tracks}")
    click.echo(f"   Failed: {stats.failed_tracks}")
    click.echo(f"   Retagged: {stats.retagged_tracks}")
    click.echo(f"   Providers: {stats.provider_summary()}")
    click.echo(f"   Size: {format_file_size(stats.total_size_bytes)}")
    if stats.duration is not None:
        click.echo(f"   Total time: {format_duration(stats.duration)}")



@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--config', type=click.Path(), help='Path to config file')
@click.pass_context
def cli(ctx, version, verbose, config):
    """
    songfetch - Download Spotify tracks, albums and playlists

    Audio is fetched from YouTube Music first and from the Kugou catalog when
    YouTube fails or the track is region-restricted.
    """
    ctx.ensure_object(dict)

    if version:
        click.echo(f"songfetch v{__version__}")
        return

    settings = reload_settings(config) if config else get_settings()
    if verbose:
        settings.logging.level = 'DEBUG'
        ctx.obj['verbose'] = True
    configure_from_settings(settings)

    if config:
        logger.info(f"Loaded config: {config}")

    if ctx.invoked_subcommand is None:
        print_banner()
        click.echo(ctx.get_help())


@cli.command()
@click.argument('url')
@click.option('--output', '-o', type=click.Path(), help='Output directory')
@click.option('--prefer', type=click.Choice(['youtube', 'kugou']), help='Provider to try first')
@click.option('--kugou/--no-kugou', default=None, help='Allow or forbid the Kugou catalog')
@click.option('--retries', type=int, help='Attempts per provider')
@click.option('--no-reconcile', is_flag=True, help='Keep Spotify tags as they are')
@handle_error
def download(url, output, prefer, kugou, retries, no_reconcile):
    """
    Download a Spotify track, album or playlist

    Albums and playlists are saved into a sub-directory named after them.
    Tracks that cannot be downloaded are recorded in the failure log of that
    directory.
    """
    from .pipeline.processor import CollectionDownloader
    from .spotify.client import SpotifyClient

    is_valid, error_msg = validate_spotify_url(url)
    if not is_valid:
        click.echo(click.style(f"Invalid Spotify URL: {error_msg}", fg='red'), err=True)
        sys.exit(1)

    if retries is not None and retries < 1:
        click.echo(click.style("--retries must be at least 1", fg='red'), err=True)
        sys.exit(1)

    settings = get_settings()
    if output:
        settings.download.output_directory = output
    if prefer:
        settings.download.preferred_provider = prefer
    if retries:
        settings.download.max_retries_per_provider = retries
    if no_reconcile:
        settings.metadata.reconcile = False

    problems = settings.validate()
    if problems:
        for problem in problems:
            click.echo(click.style(f"Configuration error: {problem}", fg='red'), err=True)
        sys.exit(1)

    spotify = SpotifyClient.from_settings(settings)
    kind, _ = parse_spotify_url(url)
    click.echo(f"Fetching Spotify {kind}...")
    tracks = [track.to_track_meta() for track in spotify.get_tracks_for_url(url)]
    if not tracks:
        click.echo("Nothing to download")
        return

    target_dir = settings.get_output_directory()
    name = None
    if kind != 'track':
        name = spotify.get_collection_name(url)
        target_dir = target_dir / sanitize_filename(name)

    processor = build_processor(settings, secondary_enabled=kugou)
    downloader = CollectionDownloader(
        processor,
        inter_track_delay=float(settings.download.inter_track_delay),
        failed_tracks_file=settings.download.failed_tracks_file
    )

    stats = downloader.run(tracks, target_dir, name=name)
    _print_stats(stats)

    if stats.interrupted:
        click.echo(click.style("Download interrupted by user", fg='yellow'))
        sys.exit(130)


@cli.command()
@click.argument('artist')
@click.argument('title')
@click.option('--output', '-o', type=click.Path(), help='Output directory')
@click.option('--prefer', type=click.Choice(['youtube', 'kugou']), help='Provider to try first')
@handle_error
def get(artist, title, output, prefer):
    """
    Download one song by artist and title

    No Spotify lookup is made; tags are the given names, corrected by Kugou or
    MusicBrainz when reconciliation is enabled.
    """
    from .pipeline.processor import TrackStatus

    settings = get_settings()
    target_dir = Path(output).expanduser() if output else settings.get_output_directory()
    target_dir.mkdir(parents=True, exist_ok=True)

    download_options = {}
    if prefer:
        download_options['preferred_provider'] = ProviderId.parse(prefer)

    processor = build_processor(settings, download_options=download_options)
    outcome = processor.process(TrackMeta(title=title, artist=artist), target_dir)

    if outcome.status is TrackStatus.SKIPPED:
        click.echo(f"Already downloaded: {outcome.file_path}")
    elif outcome.status is TrackStatus.DOWNLOADED:
        click.echo(click.style(
            f"Saved {outcome.file_path} ({outcome.result.provider_display_name})", fg='green'
        ))
        if outcome.proposal is not None:
            for key, value in outcome.proposal.as_dict().items():
                click.echo(f"   {key}: {value}")
    else:
        click.echo(click.style(f"Download failed: {outcome.error}", fg='red'), err=True)
        sys.exit(1)


# Kugou commands group
@cli.group()
def kugou():
    """
    Kugou catalog login

    Kugou needs a local KuGouMusicApi service and a session obtained by
    scanning a QR code with the Kugou app.
    """
    pass


@kugou.command()
@handle_error
def login():
    """Log in to Kugou by scanning a QR code"""
    settings = get_settings()
    auth_store, api_service = _kugou_components(settings)

    if auth_store.is_logged_in():
        click.echo("Already logged in to Kugou")
        return

    if not api_service.ensure_running(auto_start=settings.kugou.auto_start_api):
        click.echo(click.style(
            f"KuGouMusicApi is not reachable at {settings.kugou.api_url}", fg='red'
        ), err=True)
        sys.exit(1)

    def wait_for_scan():
        click.pause("Scan the QR code with the Kugou app, confirm, then press any key...")

    if not auth_store.login(wait_for_scan=wait_for_scan):
        sys.exit(1)


@kugou.command()
@handle_error
def logout():
    """Remove the stored Kugou session"""
    auth_store, _ = _kugou_components(get_settings())
    if not auth_store.logout():
        sys.exit(1)


@kugou.command()
@handle_error
def status():
    """Show Kugou login and service status"""
    settings = get_settings()
    auth_store, api_service = _kugou_components(settings)

    stored = auth_store.load()
    if stored is not None:
        click.echo("Kugou login: Logged in")
        click.echo(f"   User: {stored.user_id or 'Unknown'}")
    else:
        click.echo("Kugou login: Not logged in")
        click.echo("   Run 'songfetch kugou login' to log in")

    running = api_service.is_running()
    click.echo(f"KuGouMusicApi: {'running' if running else 'not reachable'} ({settings.kugou.api_url})")
    click.echo(f"Kugou enabled: {settings.kugou.enabled}")


# Configuration commands group
@cli.group()
def config():
    """Configuration management"""
    pass


@config.command()
@handle_error
def show():
    """Show current configuration"""
    settings = get_settings()

    click.echo("Current Configuration:\n")
    if settings.loaded_from:
        click.echo(f"Loaded from: {settings.loaded_from}\n")

    click.echo("Download:")
    click.echo(f"   Output directory: {settings.download.output_directory}")
    click.echo(f"   Format: {settings.download.format} ({settings.download.bitrate} kbps)")
    click.echo(f"   Preferred provider: {settings.download.preferred_provider}")
    click.echo(f"   Attempts per provider: {settings.download.max_retries_per_provider}")
    click.echo(f"   Retry delay: {settings.download.retry_delay}s")

    click.echo("\nKugou:")
    click.echo(f"   Enabled: {settings.kugou.enabled}")
    click.echo(f"   API URL: {settings.kugou.api_url}")
    click.echo(f"   Session file: {settings.get_kugou_auth_path()}")
    click.echo(f"   Low-score fallback: {settings.kugou.allow_low_score_fallback}")

    click.echo("\nMetadata:")
    click.echo(f"   Reconcile: {settings.metadata.reconcile}")
    click.echo(f"   MusicBrainz: {settings.metadata.musicbrainz_enabled}")
    click.echo(f"   Album art: {settings.metadata.include_album_art}")

    click.echo("\nSpotify:")
    click.echo(f"   Credentials: {'configured' if settings.spotify.client_id else 'missing'}")


@cli.command()
@handle_error
def doctor():
    """
    Run system diagnostics

    Checks credentials, ffmpeg, the Kugou service and login, and the output
    directory.
    """
    click.echo("Running diagnostics...\n")
    settings = get_settings()
    issues = settings.validate()

    if settings.spotify.client_id and settings.spotify.client_secret:
        click.echo("Spotify credentials: OK")
    else:
        click.echo("Spotify credentials: Missing")

    if shutil.which('ffmpeg'):
        click.echo("ffmpeg: OK")
    else:
        click.echo("ffmpeg: Not found")
        issues.append("ffmpeg is required to extract audio from YouTube")

    is_valid, error_msg = validate_provider_name(settings.download.preferred_provider)
    if is_valid:
        click.echo(f"Preferred provider: {settings.download.preferred_provider}")
    else:
        click.echo(f"Preferred provider: {error_msg}")

    if settings.kugou.enabled:
        auth_store, api_service = _kugou_components(settings)
        if api_service.is_running():
            click.echo(f"KuGouMusicApi: OK ({settings.kugou.api_url})")
        else:
            click.echo(f"KuGouMusicApi: Not reachable ({settings.kugou.api_url})")
            issues.append("Start KuGouMusicApi or disable Kugou")
        if auth_store.is_logged_in():
            click.echo("Kugou login: OK")
        else:
            click.echo("Kugou login: Not logged in")
            issues.append("Run 'songfetch kugou login' to enable the Kugou fallback")
    else:
        click.echo("Kugou: disabled")

    output_dir = settings.get_output_directory()
    if output_dir.is_dir():
        click.echo(f"Output directory: {output_dir}")
    else:
        click.echo(f"Output directory: {output_dir} (will be created)")

    current_log = get_current_log_file()
    click.echo(f"Logging: {current_log or 'console only'}")

    if issues:
        click.echo(f"\nFound {len(issues)} issues:")
        for issue in issues:
            click.echo(f"   • {issue}")
    else:
        click.echo("\nAll systems operational!")


if __name__ == '__main__':
    cli()

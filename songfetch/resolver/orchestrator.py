"""
Multi-source download orchestration

DownloadOrchestrator turns a wanted (artist, title) pair into an audio file.
Providers are tried in the order given by ``provider_order``; each provider
gets exactly ``max_retries_per_provider`` attempts with a linearly growing
pause between them. Every outcome, including programming errors inside a
source, is reported through a DownloadResult: ``download_audio`` does not
raise.

For the Kugou catalog one attempt consists of:

1. Searching with progressively wider query variants until one yields a
   relevant candidate set (see songfetch.resolver.scoring)
2. Taking the best candidate and recording its names as discovered metadata
3. Resolving its play URL and streaming the bytes to the output path

A candidate that is identified but cannot be fetched still reports its names,
so the caller can correct tags even when the audio came from elsewhere.
"""

import os
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from ..core.exceptions import ConfigError, NotFoundError, ProviderError, TransientError
from ..core.models import (
    PRIMARY,
    SECONDARY,
    AttemptRecord,
    DiscoveredMetadata,
    DownloadResult,
    FailureKind,
    ProviderId,
    ScoredCandidate,
    WantedTrack,
)
from ..utils.helpers import clean_search_title
from ..utils.logger import get_logger
from .policy import provider_order
from .scoring import rank


@dataclass(frozen=True)
class ResolverOptions:
    """
    Orchestrator configuration

    Attributes:
        preferred_provider: Provider tried first when allowed by the policy
        secondary_enabled: Default for whether the Kugou catalog may be used
        max_retries_per_provider: Exact number of attempts per provider
        retry_delay: Base pause in seconds; attempt n waits ``retry_delay * n``
        allow_low_score_fallback: Fetch the best low-scoring candidate when
                                  no query produced a relevant one
    """
    preferred_provider: ProviderId = PRIMARY
    secondary_enabled: bool = True
    max_retries_per_provider: int = 2
    retry_delay: float = 1.0
    allow_low_score_fallback: bool = True

    @classmethod
    def from_settings(cls, settings, secondary_enabled: Optional[bool] = None) -> 'ResolverOptions':
        """
        Raises:
            ConfigError: Unknown preferred provider or an attempt budget below 1
        """
        try:
            preferred = ProviderId.parse(settings.download.preferred_provider) or PRIMARY
        except ValueError as e:
            raise ConfigError(str(e), details={'section': 'download'}) from e

        attempts = int(settings.download.max_retries_per_provider)
        if attempts < 1:
            raise ConfigError(
                "download.max_retries_per_provider must be at least 1",
                details={'section': 'download'}
            )

        return cls(
            preferred_provider=preferred,
            secondary_enabled=settings.kugou.enabled if secondary_enabled is None else secondary_enabled,
            max_retries_per_provider=attempts,
            retry_delay=float(settings.download.retry_delay),
            allow_low_score_fallback=settings.kugou.allow_low_score_fallback
        )


def build_query_variants(wanted: WantedTrack) -> List[str]:
    """
    Catalog queries for a track, most specific first

    ``"artist title"``, ``title``, ``"title artist"``, the punctuation-free
    title, then ``"artist <punctuation-free title>"``. Empty and repeated
    variants are dropped.
    """
    artist = wanted.artist.strip()
    title = wanted.title.strip()
    cleaned = clean_search_title(title)

    variants = [
        f"{artist} {title}",
        title,
        f"{title} {artist}",
        cleaned,
        f"{artist} {cleaned}",
    ]

    unique = []
    for variant in variants:
        variant = variant.strip()
        if variant and variant not in unique:
            unique.append(variant)
    return unique


class DownloadOrchestrator:
    """
    Ranked multi-provider downloader

    Args:
        primary: YouTube source (``download(wanted, output_path)``)
        secondary: Kugou source (``search``, ``get_play_url``, ``download``),
                   None when not configured
        options: ResolverOptions
        secondary_available: Result of the login and service checks made when
                             the orchestrator was built; the Kugou source is
                             never used when False
        sleep: Sleep function (injectable for tests)
    """

    def __init__(
        self,
        primary,
        secondary=None,
        options: Optional[ResolverOptions] = None,
        secondary_available: bool = False,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.primary = primary
        self.secondary = secondary
        self.options = options or ResolverOptions()
        self._secondary_available = bool(secondary_available and secondary is not None)
        self._sleep = sleep
        self.logger = get_logger(__name__)

    @property
    def secondary_available(self) -> bool:
        return self._secondary_available

    def download_audio(
        self,
        artist: str,
        title: str,
        output_path: str,
        preferred_provider: Optional[ProviderId] = None,
        secondary_enabled: Optional[bool] = None,
        max_retries_per_provider: Optional[int] = None
    ) -> DownloadResult:
        """
        Download one track from the first provider that delivers it

        Args:
            artist: Artist name(s) to look for
            title: Track title to look for
            output_path: Absolute path of the audio file to create; its
                         directory must exist
            preferred_provider: Overrides the configured preference
            secondary_enabled: Overrides whether Kugou may be used (it still
                               needs to be available)
            max_retries_per_provider: Overrides the attempt budget; values
                                      below 1 mean a single attempt

        Returns:
            DownloadResult describing the outcome
        """
        wanted = WantedTrack(artist=artist, title=title)
        output_path = os.path.abspath(output_path)

        preferred = preferred_provider or self.options.preferred_provider
        enabled = self.options.secondary_enabled if secondary_enabled is None else secondary_enabled
        enabled = enabled and self._secondary_available
        if max_retries_per_provider is None:
            max_retries_per_provider = self.options.max_retries_per_provider
        # An override below one still gets a single attempt
        attempts_per_provider = max(1, max_retries_per_provider)

        attempts: List[AttemptRecord] = []
        discovered: Optional[DiscoveredMetadata] = None
        last_error: Optional[str] = None

        for provider in provider_order(preferred, enabled):
            for attempt in range(1, attempts_per_provider + 1):
                self.logger.debug(f"{wanted}: {provider.display_name} attempt {attempt}/{attempts_per_provider}")
                try:
                    found = self._run_provider(provider, wanted, output_path)
                except ProviderError as e:
                    if e.discovered is not None:
                        discovered = e.discovered
                    last_error = str(e)
                    attempts.append(AttemptRecord(provider, attempt, e.failure, last_error))
                    self.logger.debug(f"{provider.display_name} attempt {attempt} failed ({e.failure.value}): {e}")
                    if not e.retryable:
                        break
                except Exception as e:
                    last_error = str(e) or e.__class__.__name__
                    attempts.append(AttemptRecord(provider, attempt, FailureKind.TRANSIENT, last_error))
                    self.logger.debug(f"{provider.display_name} attempt {attempt} crashed: {e}", exc_info=True)
                else:
                    attempts.append(AttemptRecord(provider, attempt))
                    return DownloadResult(
                        success=True,
                        provider=provider,
                        provider_display_name=provider.display_name,
                        discovered_metadata=found if provider is SECONDARY else None,
                        attempts=attempts,
                        file_path=output_path,
                        file_size=self._file_size(output_path)
                    )

                if attempt < attempts_per_provider:
                    self._sleep(self.options.retry_delay * attempt)

        self.logger.debug(f"{wanted}: all providers exhausted after {len(attempts)} attempts")
        return DownloadResult(
            success=False,
            provider=preferred,
            provider_display_name=preferred.display_name,
            error=last_error,
            failure=FailureKind.EXHAUSTED,
            discovered_metadata=discovered,
            attempts=attempts
        )

    def _run_provider(self, provider: ProviderId, wanted: WantedTrack, output_path: str) -> Optional[DiscoveredMetadata]:
        if provider is SECONDARY:
            return self._fetch_secondary(wanted, output_path)
        self.primary.download(wanted, output_path)
        return None

    def _fetch_secondary(self, wanted: WantedTrack, output_path: str) -> DiscoveredMetadata:
        best = self._select_candidate(wanted)
        discovered = DiscoveredMetadata(
            title=best.song_name or wanted.title,
            artist=best.singer_name or wanted.artist,
            album=best.album_name or ""
        )
        self.logger.debug(
            f"Kugou candidate for {wanted}: {discovered.artist} - {discovered.title} "
            f"(score {best.match_score}, hash {best.source_id})"
        )

        try:
            url = self.secondary.get_play_url(best.source_id)
            self.secondary.download(url, output_path, best.source_id)
        except ProviderError as e:
            e.provider = SECONDARY
            e.discovered = discovered
            raise

        return discovered

    def _select_candidate(self, wanted: WantedTrack) -> ScoredCandidate:
        """
        Search with widening queries and pick the best candidate

        Raises:
            TransientError: Every query failed at the transport level
            NotFoundError: No query produced a usable candidate
        """
        variants = build_query_variants(wanted)
        fallback = None
        failed_queries = 0
        last_failure: Optional[TransientError] = None

        for query in variants:
            try:
                candidates = self.secondary.search(query)
            except TransientError as e:
                failed_queries += 1
                last_failure = e
                self.logger.debug(f"Kugou search '{query}' failed: {e}")
                continue

            if not candidates:
                continue

            ranked = rank(candidates, wanted, query)
            if ranked.relevant:
                self.logger.debug(f"Kugou query '{query}' gave {len(ranked.candidates)} relevant candidates")
                return ranked.candidates[0]

            if fallback is None:
                fallback = ranked

        if fallback is not None and self.options.allow_low_score_fallback:
            best = fallback.candidates[0]
            self.logger.warning(
                f"No confident Kugou match for {wanted}, using best effort "
                f"'{best.singer_name} - {best.song_name}' (score {best.match_score})"
            )
            return best

        if failed_queries == len(variants):
            raise TransientError(
                f"Kugou search failed: {last_failure}",
                details={'queries': variants},
                provider=SECONDARY
            )

        raise NotFoundError(
            "No matching track on Kugou",
            details={'queries': variants},
            provider=SECONDARY
        )

    @staticmethod
    def _file_size(path: str) -> Optional[int]:
        try:
            return os.path.getsize(path)
        except OSError:
            return None


def build_orchestrator(
    settings,
    auth_store=None,
    api_service=None,
    secondary_enabled: Optional[bool] = None,
    primary=None,
    secondary=None,
    sleep: Callable[[float], None] = time.sleep
) -> DownloadOrchestrator:
    """
    Build an orchestrator for one run

    Kugou availability (stored login plus a reachable KuGouMusicApi) is checked
    once here and fixed for the lifetime of the returned instance.

    Args:
        settings: Settings instance
        auth_store: KugouAuthStore, required for Kugou
        api_service: KugouApiService, required for Kugou
        secondary_enabled: Overrides ``kugou.enabled``
        primary: Source replacing the default YouTubeSource
        secondary: Source replacing the default KugouSource
        sleep: Sleep function used between attempts

    Returns:
        DownloadOrchestrator
    """
    from ..sources.kugou import KugouSource
    from ..sources.youtube import YouTubeSource

    logger = get_logger(__name__)
    options = ResolverOptions.from_settings(settings, secondary_enabled=secondary_enabled)

    available = False
    if options.secondary_enabled and auth_store is not None and api_service is not None:
        logged_in = auth_store.is_logged_in()
        running = api_service.ensure_running(auto_start=settings.kugou.auto_start_api)
        if not logged_in:
            logger.console_warning("Kugou is not logged in, run 'songfetch kugou login' to enable it")
        elif not running:
            logger.console_warning(f"KuGouMusicApi is not reachable at {settings.kugou.api_url}, Kugou disabled")
        available = logged_in and running

    if primary is None:
        primary = YouTubeSource.from_settings(settings)
    if secondary is None and available:
        secondary = KugouSource.from_settings(settings, auth_store)

    logger.debug(
        f"Orchestrator ready: prefer={options.preferred_provider.value}, "
        f"kugou={'available' if available else 'unavailable'}, "
        f"retries={options.max_retries_per_provider}"
    )
    return DownloadOrchestrator(
        primary=primary,
        secondary=secondary,
        options=options,
        secondary_available=available,
        sleep=sleep
    )

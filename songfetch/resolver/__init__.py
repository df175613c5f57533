"""
Download resolution: candidate scoring, provider ordering and the orchestrator
"""

from .scoring import RankedCandidates, rank, score_candidate
from .policy import provider_order
from .orchestrator import (
    DownloadOrchestrator,
    ResolverOptions,
    build_orchestrator,
    build_query_variants,
)

__all__ = [
    'RankedCandidates',
    'rank',
    'score_candidate',
    'provider_order',
    'DownloadOrchestrator',
    'ResolverOptions',
    'build_orchestrator',
    'build_query_variants',
]

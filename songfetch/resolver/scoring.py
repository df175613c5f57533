"""
Match scoring for regional catalog candidates

Catalog search is fuzzy: a query for "陈奕迅 十年" returns the studio
recording next to live versions, covers and unrelated songs. Each candidate is
scored against the wanted (artist, title) pair and the query that found it:

    +10  title contains the wanted title, or the other way round
    +15  titles are equal
    +8   artist contains the wanted artist, or the other way round
    +12  artists are equal
    +2   per query token (longer than one character) found in
         "<candidate title> <candidate artist>"

All comparisons are case-insensitive on trimmed strings. An empty string never
counts as contained in anything.
"""

from typing import List, NamedTuple, Sequence

from ..core.models import CandidateRecord, ScoredCandidate, WantedTrack

RELEVANCE_THRESHOLD = 5
MAX_RELEVANT = 5
MAX_FALLBACK = 3

TITLE_CONTAINS = 10
TITLE_EXACT = 15
ARTIST_CONTAINS = 8
ARTIST_EXACT = 12
TOKEN_HIT = 2


class RankedCandidates(NamedTuple):
    """
    Output of rank()

    ``relevant`` is False when the candidates are a low-confidence fallback
    (nothing reached the relevance threshold).
    """
    candidates: List[ScoredCandidate]
    relevant: bool


def _contains_either_way(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return a in b or b in a


def score_candidate(candidate: CandidateRecord, wanted: WantedTrack, search_query: str) -> int:
    """Score one candidate; see the module docstring for the rules"""
    title = candidate.song_name.strip().lower()
    artist = candidate.singer_name.strip().lower()
    wanted_title = wanted.title.strip().lower()
    wanted_artist = wanted.artist.strip().lower()

    score = 0
    if _contains_either_way(title, wanted_title):
        score += TITLE_CONTAINS
        if title == wanted_title:
            score += TITLE_EXACT

    if _contains_either_way(artist, wanted_artist):
        score += ARTIST_CONTAINS
        if artist == wanted_artist:
            score += ARTIST_EXACT

    haystack = f"{title} {artist}"
    for token in search_query.lower().split():
        if len(token) > 1 and token in haystack:
            score += TOKEN_HIT

    return score


def rank(candidates: Sequence[CandidateRecord], wanted: WantedTrack, search_query: str) -> RankedCandidates:
    """
    Score and select candidates

    Candidates at or above the relevance threshold are returned best first,
    at most five. When none qualifies, the three best are returned with
    ``relevant=False``. Equal scores keep the upstream order.

    Args:
        candidates: Raw candidates in upstream order
        wanted: The track being resolved
        search_query: The query that produced the candidates

    Returns:
        RankedCandidates, empty when there were no candidates
    """
    scored = [
        ScoredCandidate(candidate=candidate, match_score=score_candidate(candidate, wanted, search_query))
        for candidate in candidates
    ]
    # sorted() is stable, so ties keep discovery order
    scored = sorted(scored, key=lambda item: item.match_score, reverse=True)

    relevant = [item for item in scored if item.match_score >= RELEVANCE_THRESHOLD]
    if relevant:
        return RankedCandidates(candidates=relevant[:MAX_RELEVANT], relevant=True)

    return RankedCandidates(candidates=scored[:MAX_FALLBACK], relevant=False)

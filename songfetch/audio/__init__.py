"""
Audio file tagging
"""

from .tagger import TagSet, TagWriter, CoverArtFetcher

__all__ = [
    'TagSet',
    'TagWriter',
    'CoverArtFetcher',
]

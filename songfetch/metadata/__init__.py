"""
Metadata reconciliation (Kugou names, MusicBrainz reference lookups)
"""

from .reconcile import MetadataReconciler, MusicBrainzCatalog, extract_reference_fields

__all__ = [
    'MetadataReconciler',
    'MusicBrainzCatalog',
    'extract_reference_fields',
]

"""
Configuration management package for songfetch

Two components live here:

1. Settings (settings.py): YAML file plus environment variables, exposed
   through typed dataclass sections.
2. Kugou session (kugou_auth.py): the stored login used by the Kugou catalog
   source, and the QR-code flow that creates it.

Usage:

    from songfetch.config import get_settings, KugouAuthStore

    settings = get_settings()
    auth_store = KugouAuthStore.from_settings(settings)
"""

from .settings import get_settings, reload_settings, Settings
from .kugou_auth import KugouAuthStore, KugouSession

__all__ = [
    'get_settings',
    'reload_settings',
    'Settings',
    'KugouAuthStore',
    'KugouSession',
]

"""
Utilities package
Common helpers, logging, and file utilities
"""

from .logger import (
    get_logger,
    configure_from_settings,
    setup_logging,
    OperationLogger,
    create_operation_logger,
    log_performance,
    get_current_log_file
)
from .helpers import (
    sanitize_filename,
    clean_search_title,
    format_duration,
    format_file_size,
    get_file_extension
)
from .files import atomic_destination, temp_path_for, remove_quietly
from .validation import parse_spotify_url, validate_spotify_url, validate_provider_name

__all__ = [
    # Logger exports
    'get_logger',
    'configure_from_settings',
    'setup_logging',
    'OperationLogger',
    'create_operation_logger',
    'log_performance',
    'get_current_log_file',

    # Helper exports
    'sanitize_filename',
    'clean_search_title',
    'format_duration',
    'format_file_size',
    'get_file_extension',

    # File exports
    'atomic_destination',
    'temp_path_for',
    'remove_quietly',

    # Validation exports
    'parse_spotify_url',
    'validate_spotify_url',
    'validate_provider_name',
]

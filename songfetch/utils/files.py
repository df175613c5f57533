"""
Atomic file placement

Sources never write directly to the requested output path. They write to a
temporary sibling and the file is moved into place only once it is complete,
so an interrupted download never leaves a truncated file under the final name.
"""

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

from .logger import get_logger

logger = get_logger(__name__)

TEMP_SUFFIX = ".part"


def temp_path_for(destination: Union[str, Path]) -> Path:
    """Temporary sibling used while ``destination`` is being written"""
    destination = Path(destination)
    return destination.with_name(f".{destination.name}{TEMP_SUFFIX}")


def remove_quietly(path: Union[str, Path]) -> None:
    """Delete a leftover partial file, logging instead of raising"""
    try:
        Path(path).unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to remove partial file {path}: {e}")


@contextmanager
def atomic_destination(destination: Union[str, Path]) -> Iterator[Path]:
    """
    Yield a temporary path and move it onto ``destination`` on success

    The parent directory must already exist. When the body raises, the
    temporary file is deleted and the exception propagates; the destination is
    left untouched. A body that exits normally without creating the temporary
    file leaves the destination untouched as well.

    Args:
        destination: Final file path

    Yields:
        Temporary path to write to
    """
    destination = Path(destination)
    temp_path = temp_path_for(destination)

    try:
        yield temp_path
    except BaseException:
        remove_quietly(temp_path)
        raise

    if temp_path.exists():
        os.replace(temp_path, destination)
        logger.debug(f"Moved {temp_path.name} into place as {destination}")

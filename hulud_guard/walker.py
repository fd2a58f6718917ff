"""Depth-bounded directory traversal."""
import logging
import os
from pathlib import Path

from .catalog import DEPENDENCY_DIR

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 10


def _log_walk_error(exc: OSError):
    LOGGER.debug("Skipping unreadable directory %s: %s", exc.filename, exc.strerror)


def walk(root, max_depth: int = DEFAULT_MAX_DEPTH, skip_nested: str = DEPENDENCY_DIR, follow_links: bool = True):
    """Yield ``(dirpath, filenames)`` for every directory under ``root``.

    Traversal is depth first in enumeration order. Directories more than
    ``max_depth`` segments below ``root`` are not entered, which also bounds
    symlink cycles. Once the walk is inside a ``skip_nested`` directory,
    further nested directories of that name are pruned.
    """
    root = os.fspath(root)
    if not os.path.isdir(root):
        return
    root_depth = len(Path(root).parts)

    for dirpath, dirnames, filenames in os.walk(root, onerror=_log_walk_error, followlinks=follow_links):
        depth = len(Path(dirpath).parts) - root_depth
        if depth >= max_depth:
            dirnames[:] = []
        elif skip_nested and skip_nested in Path(dirpath).parts:
            dirnames[:] = [d for d in dirnames if d != skip_nested]
        yield dirpath, filenames


def find_files(filename: str, root, max_depth: int = DEFAULT_MAX_DEPTH):
    """Yield paths of files named ``filename`` under ``root``."""
    for dirpath, filenames in walk(root, max_depth=max_depth):
        if filename in filenames:
            yield os.path.join(dirpath, filename)

"""Remote/local path helpers shared by the browser and the transfer workers."""

from __future__ import annotations

import logging
import os
import posixpath
from pathlib import Path
from typing import Container

logger = logging.getLogger(__name__)


def join_remote_path(base: str, name: str) -> str:
    """Join *name* onto the remote directory *base* with a single ``/``.

    ``"/"`` as *base* is a no-op prefix, so ``join_remote_path("/", "etc")``
    gives ``"/etc"``.
    """
    if base == "/":
        return f"/{name}"
    if base.endswith("/"):
        return f"{base}{name}"
    return f"{base}/{name}"


def parent_remote_path(path: str) -> str:
    """Return the parent of the remote *path*, never an empty string.

    ``.`` and ``..`` segments are not normalised.
    """
    if path == "/":
        return "/"
    return posixpath.dirname(path.rstrip("/")) or "/"


def shell_escape(path: str) -> str:
    """Single-quote *path* for a POSIX shell.

    Embedded single quotes are written as ``'\\''``.  This keeps paths with
    spaces and quotes intact; it is not a general shell-injection defence.
    """
    if not path:
        return "''"
    return "'" + path.replace("'", "'\\''") + "'"


def split_name(file_name: str) -> tuple[str, str]:
    """Split *file_name* at its first ``.`` into ``(base, suffix)``.

    ``archive.tar.gz`` gives ``("archive", ".tar.gz")``; a name without a dot
    has an empty suffix.
    """
    pos = file_name.find(".")
    if pos == -1:
        return file_name, ""
    return file_name[:pos], file_name[pos:]


def unique_local_path(
    directory: str | os.PathLike[str],
    file_name: str,
    taken: Container[str] = (),
) -> Path:
    """Return a path in *directory* for *file_name* that does not exist yet.

    Tries ``base+suffix``, then ``base (1)+suffix``, ``base (2)+suffix`` ...
    Paths listed in *taken* are skipped as if they existed.
    """
    directory = Path(directory)
    base, suffix = split_name(file_name)

    def _free(path: Path) -> bool:
        return not path.exists() and str(path) not in taken

    candidate = directory / f"{base}{suffix}"
    if _free(candidate):
        return candidate

    n = 1
    while True:
        candidate = directory / f"{base} ({n}){suffix}"
        if _free(candidate):
            logger.debug("Name collision for %r — using %s", file_name, candidate.name)
            return candidate
        n += 1


def remote_basename(path: str) -> str:
    """Last component of a remote path (``"/"`` for the root)."""
    name = posixpath.basename(path.rstrip("/"))
    return name or "/"


def human_readable_size(size_bytes: int | float) -> str:
    """Convert a byte count to a human-readable string (e.g. "4.2 MB").

    Uses 1024-based units but labels them KB/MB/GB for familiarity.
    """
    if size_bytes < 0:
        return "0 B"
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if size_bytes < 1024.0:
            if unit == "B":
                return f"{int(size_bytes)} B"
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.1f} PB"

"""Directory listings for the local and remote panels.

Remote access is deliberately permissive: a listing the transport cannot
produce comes back empty so the browser stays usable.  Local access is not:
``OSError`` from the filesystem propagates to the caller, which shows it to
the operator.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from sshpanes.transport import Transport
from sshpanes.utils.path_helpers import join_remote_path

logger = logging.getLogger(__name__)

PARENT_ENTRY_NAME = ".."


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FileEntry:
    """A single file or directory in a listing."""

    name: str
    is_dir: bool

    @property
    def is_parent(self) -> bool:
        return self.name == PARENT_ENTRY_NAME

    @property
    def is_hidden(self) -> bool:
        return self.name.startswith(".") and not self.is_parent


@dataclass(frozen=True)
class RemoteFile:
    """A regular file found while walking a remote tree."""

    remote_path: str
    relative_path: str
    size: Optional[int]


PARENT_ENTRY = FileEntry(PARENT_ENTRY_NAME, True)


def sort_entries(entries: Iterable[FileEntry]) -> list[FileEntry]:
    """Directories first, then files, each group case-insensitively by name."""
    return sorted(entries, key=lambda e: (not e.is_dir, e.name.lower()))


def with_parent_entry(entries: list[FileEntry], has_parent: bool) -> list[FileEntry]:
    """Prepend the synthetic ``..`` entry when the directory has a parent."""
    if has_parent:
        return [PARENT_ENTRY, *entries]
    return list(entries)


def apply_filter(entries: Iterable[FileEntry], text: str) -> list[FileEntry]:
    """Keep entries whose name contains *text* (case-insensitive).

    The ``..`` entry is never filtered away.
    """
    if not text:
        return list(entries)
    needle = text.lower()
    return [e for e in entries if e.is_parent or needle in e.name.lower()]


# ---------------------------------------------------------------------------
# Local
# ---------------------------------------------------------------------------


def list_local(path: str | os.PathLike[str]) -> list[FileEntry]:
    """List *path* on the local filesystem.

    Raises:
        OSError: Permission denied, missing directory, etc.
    """
    entries = []
    with os.scandir(path) as it:
        for entry in it:
            entries.append(FileEntry(name=entry.name, is_dir=entry.is_dir()))
    return sort_entries(entries)


def local_has_parent(path: str | os.PathLike[str]) -> bool:
    p = Path(path)
    return p.parent != p


def walk_local(root: str | os.PathLike[str]) -> tuple[list[str], list[tuple[Path, str]]]:
    """Enumerate a local directory tree for a recursive upload.

    Returns ``(directories, files)``: every sub-directory as a relative POSIX
    path, and every regular file as ``(absolute_path, relative_posix_path)``,
    both in sorted order.
    """
    root = Path(root)
    directories: list[str] = []
    files: list[tuple[Path, str]] = []
    for path in sorted(root.rglob("*")):
        rel = path.relative_to(root).as_posix()
        if path.is_dir():
            directories.append(rel)
        elif path.is_file():
            files.append((path, rel))
    return directories, files


# ---------------------------------------------------------------------------
# Remote
# ---------------------------------------------------------------------------


def parse_ls_output(text: str) -> list[FileEntry]:
    """Parse ``ls -p -1`` output; a trailing ``/`` marks a directory."""
    entries = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        is_dir = line.endswith("/")
        name = line.rstrip("/") if is_dir else line
        entries.append(FileEntry(name=name, is_dir=is_dir))
    return sort_entries(entries)


def list_remote(transport: Transport, path: str) -> list[FileEntry]:
    """List *path* on the remote host; any failure yields an empty list."""
    result = transport.list_dir(path)
    if not result.ok:
        logger.warning("Remote listing of %r failed: %s", path, result.describe())
        return []
    entries = parse_ls_output(result.stdout)
    logger.debug("Listed %d remote entries in %s", len(entries), path)
    return entries


def remote_has_parent(path: str) -> bool:
    return path != "/"


def probe_remote_size(transport: Transport, path: str) -> Optional[int]:
    """Byte size of the remote file at *path*, or ``None`` if unknown."""
    result = transport.stat_size(path)
    if not result.ok:
        logger.debug("Size probe for %r failed: %s", path, result.describe())
        return None
    for line in result.stdout.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            return int(line)
        except ValueError:
            logger.debug("Unparsable size %r for %r", line, path)
            return None
    return None


def walk_remote(transport: Transport, root: str) -> list[RemoteFile]:
    """Depth-first list of every regular file under the remote *root*.

    Sub-directories the transport cannot list contribute nothing.
    """
    files: list[RemoteFile] = []

    def _walk(remote_dir: str, rel_dir: str) -> None:
        for entry in list_remote(transport, remote_dir):
            full = join_remote_path(remote_dir, entry.name)
            rel = f"{rel_dir}/{entry.name}" if rel_dir else entry.name
            if entry.is_dir:
                _walk(full, rel)
            else:
                files.append(RemoteFile(full, rel, probe_remote_size(transport, full)))

    _walk(root, "")
    return files


def resolve_remote_home(transport: Transport) -> str:
    """The remote user's home directory if it can be listed, else ``"/"``."""
    result = transport.home()
    home = result.stdout.strip().splitlines()[-1].strip() if result.ok and result.stdout.strip() else ""
    if home.startswith("/") and transport.list_dir(home).ok:
        return home
    logger.info("Remote home not listable — starting at /")
    return "/"

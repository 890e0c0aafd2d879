"""Dual-panel browser state machine.

:class:`Browser` owns both :class:`PanelState` objects, the focus, the
Normal/Filter mode and the :class:`~sshpanes.transfer.TransferManager`.  It
interprets normalised key names (``"Up"``, ``"Return"``, ``"d"`` ...) and is
the only code that mutates panel state; the Tk front end just forwards keys
and renders.
"""

from __future__ import annotations

import logging
import os
import queue
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Optional

from sshpanes.jobs import Completed, TransferKind
from sshpanes.listing import (
    FileEntry,
    apply_filter,
    list_local,
    list_remote,
    local_has_parent,
    remote_has_parent,
    resolve_remote_home,
    with_parent_entry,
)
from sshpanes.transfer import MAX_PARALLEL_DOWNLOADS, TransferManager
from sshpanes.transport import Transport
from sshpanes.utils.path_helpers import join_remote_path, parent_remote_path

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "Tab: switch panel • Enter: open dir • Backspace: up • /: filter • "
    "d: download (remote) • u: upload (local) • r: refresh • q: quit"
)


NAMED_KEYS = ("Up", "Down", "Tab", "Return", "BackSpace", "Escape")

_KEYSYM_ALIASES = {
    "KP_Enter": "Return",
    "ISO_Left_Tab": "Tab",
    "KP_Up": "Up",
    "KP_Down": "Down",
}


def normalize_key(keysym: str, char: str = "") -> str | None:
    """Map a Tk key event to the name :meth:`Browser.handle_key` expects.

    Returns ``None`` for keys the browser does not handle (modifiers,
    function keys ...).
    """
    keysym = _KEYSYM_ALIASES.get(keysym, keysym)
    if keysym in NAMED_KEYS:
        return keysym
    if len(char) == 1 and char.isprintable():
        return char
    return None


class Focus(Enum):
    LOCAL = auto()
    REMOTE = auto()

    def other(self) -> "Focus":
        return Focus.REMOTE if self is Focus.LOCAL else Focus.LOCAL


class Mode(Enum):
    NORMAL = auto()
    FILTER = auto()


# ---------------------------------------------------------------------------
# PanelState
# ---------------------------------------------------------------------------


@dataclass
class PanelState:
    """Listing and cursor of one side.

    ``all_entries`` is the unfiltered listing (``..`` included); ``entries``
    is what is shown.  ``selected_index`` is ``None`` exactly when
    ``entries`` is empty.
    """

    cwd: str
    entries: list[FileEntry] = field(default_factory=list)
    all_entries: list[FileEntry] = field(default_factory=list)
    selected_index: Optional[int] = None

    def set_listing(self, entries: list[FileEntry], reset_selection: bool = True) -> None:
        self.all_entries = list(entries)
        self.show(self.all_entries, reset_selection)

    def show(self, entries: list[FileEntry], reset_selection: bool = True) -> None:
        self.entries = list(entries)
        if reset_selection:
            self.selected_index = 0
        self.clamp()

    def clamp(self) -> None:
        if not self.entries:
            self.selected_index = None
        elif self.selected_index is None:
            self.selected_index = 0
        else:
            self.selected_index = max(0, min(self.selected_index, len(self.entries) - 1))

    def move(self, delta: int) -> None:
        if self.selected_index is None:
            return
        self.selected_index += delta
        self.clamp()

    def select(self, index: int) -> None:
        self.selected_index = index
        self.clamp()

    def selected_entry(self) -> FileEntry | None:
        if self.selected_index is None:
            return None
        return self.entries[self.selected_index]


# ---------------------------------------------------------------------------
# Browser
# ---------------------------------------------------------------------------


class Browser:
    """Key-driven controller for the local and remote panels.

    Args:
        transport: Remote access used for listings and transfers.
        local_start: Initial local directory (default: home).
        remote_start: Initial remote directory; empty means the remote home
            if it can be listed, else ``/``.
        max_parallel_downloads: Bound on concurrently active single-file
            downloads.
        show_hidden: Whether dot-files are listed.
    """

    def __init__(
        self,
        transport: Transport,
        local_start: str | os.PathLike[str] | None = None,
        remote_start: str | None = None,
        max_parallel_downloads: int = MAX_PARALLEL_DOWNLOADS,
        max_queued: int = 0,
        show_hidden: bool = True,
    ) -> None:
        self.transport = transport
        self.show_hidden = show_hidden
        self.transfers = TransferManager(
            transport,
            max_parallel_downloads=max_parallel_downloads,
            max_queued=max_queued,
            on_refresh=self._on_transfer_finished,
            on_status=self._set_message,
        )
        self.focus = Focus.REMOTE
        self.mode = Mode.NORMAL
        self.filter_text = ""
        self.message: str | None = None
        self.quit_requested = False

        local_cwd = str(Path(local_start).expanduser()) if local_start else str(Path.home())
        remote_cwd = remote_start or resolve_remote_home(transport)
        self.local = PanelState(cwd=local_cwd)
        self.remote = PanelState(cwd=remote_cwd)
        self.load_local(local_cwd)
        self.load_remote(remote_cwd)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def focused(self) -> PanelState:
        return self.local if self.focus is Focus.LOCAL else self.remote

    def panel(self, focus: Focus) -> PanelState:
        return self.local if focus is Focus.LOCAL else self.remote

    def footer_text(self) -> str:
        """First status line: filter prompt, last message, or key help."""
        if self.mode is Mode.FILTER:
            return f"Filter: {self.filter_text}"
        return self.message or HELP_TEXT

    def _set_message(self, message: str | None) -> None:
        self.message = message

    def _visible(self, entries: list[FileEntry]) -> list[FileEntry]:
        if self.show_hidden:
            return entries
        return [e for e in entries if not e.is_hidden]

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def load_local(self, path: str, reset_selection: bool = True) -> bool:
        """List *path* into the local panel.

        On failure the panel keeps its contents and the error becomes the
        status message.
        """
        try:
            entries = self._visible(list_local(path))
        except OSError as exc:
            logger.warning("Local listing of %r failed: %s", path, exc)
            self.message = f"Local read error: {exc}"
            return False
        self.local.cwd = path
        self.local.set_listing(with_parent_entry(entries, local_has_parent(path)), reset_selection)
        return True

    def load_remote(self, path: str, reset_selection: bool = True) -> bool:
        """List *path* into the remote panel (an unreadable path lists empty)."""
        entries = self._visible(list_remote(self.transport, path))
        self.remote.cwd = path
        self.remote.set_listing(
            with_parent_entry(entries, remote_has_parent(path)), reset_selection
        )
        return True

    def _load(self, focus: Focus, path: str, reset_selection: bool = True) -> bool:
        if focus is Focus.LOCAL:
            return self.load_local(path, reset_selection)
        return self.load_remote(path, reset_selection)

    def refresh(self, focus: Focus) -> None:
        """Re-list a panel in place, keeping the cursor and any active filter."""
        panel = self.panel(focus)
        if not self._load(focus, panel.cwd, reset_selection=False):
            return
        if self.mode is Mode.FILTER and focus is self.focus:
            panel.show(apply_filter(panel.all_entries, self.filter_text), reset_selection=False)

    def _on_transfer_finished(self, kind: TransferKind) -> None:
        self.refresh(Focus.LOCAL if kind is TransferKind.DOWNLOAD else Focus.REMOTE)

    def _parent_of(self, focus: Focus, path: str) -> str:
        if focus is Focus.LOCAL:
            return str(Path(path).parent)
        return parent_remote_path(path)

    def _child_of(self, focus: Focus, path: str, name: str) -> str:
        if focus is Focus.LOCAL:
            return str(Path(path) / name)
        return join_remote_path(path, name)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def open_selected(self) -> None:
        """Enter the selected directory (or the parent for ``..``)."""
        entry = self.focused.selected_entry()
        if entry is None or not entry.is_dir:
            return
        cwd = self.focused.cwd
        if entry.is_parent:
            target = self._parent_of(self.focus, cwd)
        else:
            target = self._child_of(self.focus, cwd, entry.name)
        if self._load(self.focus, target):
            self.message = None

    def go_up(self) -> None:
        """Re-list the parent of the focused panel's directory."""
        cwd = self.focused.cwd
        parent = self._parent_of(self.focus, cwd)
        if parent == cwd:
            return
        if self._load(self.focus, parent):
            self.message = None

    def switch_focus(self) -> None:
        if self.mode is Mode.FILTER:
            self.exit_filter()
        self.focus = self.focus.other()

    def select(self, focus: Focus, index: int) -> None:
        """Focus a panel and move its cursor to *index* (mouse selection)."""
        if focus is not self.focus:
            self.switch_focus()
        self.panel(focus).select(index)

    # ------------------------------------------------------------------
    # Filter mode
    # ------------------------------------------------------------------

    def enter_filter(self) -> None:
        self.mode = Mode.FILTER
        self.filter_text = ""
        self.message = None

    def exit_filter(self) -> None:
        """Restore the unfiltered listing, select the first entry, go Normal."""
        panel = self.focused
        panel.show(panel.all_entries, reset_selection=True)
        self.mode = Mode.NORMAL
        self.filter_text = ""

    def _apply_filter(self) -> None:
        panel = self.focused
        panel.show(apply_filter(panel.all_entries, self.filter_text), reset_selection=True)

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    def download_selected(self) -> None:
        """Queue the selected remote file, or start a folder download."""
        if self.focus is not Focus.REMOTE:
            return
        entry = self.remote.selected_entry()
        if entry is None or entry.is_parent:
            return
        remote_path = join_remote_path(self.remote.cwd, entry.name)
        if entry.is_dir:
            self.transfers.submit_folder_download(remote_path, self.local.cwd)
            self.message = f"Downloading folder {entry.name}"
            return
        try:
            self.transfers.submit_download(remote_path, self.local.cwd)
        except queue.Full as exc:
            self.message = f"Cannot queue {entry.name}: {exc}"
            return
        self.message = f"Queued download {entry.name}"

    def upload_selected(self) -> None:
        """Upload the selected local file or directory into the remote cwd."""
        if self.focus is not Focus.LOCAL:
            return
        entry = self.local.selected_entry()
        if entry is None or entry.is_parent:
            return
        self.upload_paths([Path(self.local.cwd) / entry.name])

    def upload_paths(self, paths: list[str | os.PathLike[str]]) -> None:
        """Upload arbitrary local paths (used by drag-and-drop)."""
        for path in paths:
            job = self.transfers.submit_upload(path, self.remote.cwd)
            self.message = f"Uploading {job.file_name}"

    def tick(self) -> list[Completed]:
        """One UI tick of the transfer machinery."""
        return self.transfers.tick()

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def handle_key(self, key: str) -> None:
        """Apply one key press.

        In Filter mode printable characters and ``BackSpace`` edit the
        filter, ``Escape`` leaves it, and ``Return`` navigates and leaves
        it; every other key behaves as in Normal mode.
        """
        if self.mode is Mode.FILTER:
            if key == "Escape":
                self.exit_filter()
                return
            if key == "BackSpace":
                self.filter_text = self.filter_text[:-1]
                self._apply_filter()
                return
            if len(key) == 1 and key.isprintable():
                self.filter_text += key
                self._apply_filter()
                return
            if key == "Return":
                cwd = self.focused.cwd
                self.open_selected()
                if self.focused.cwd == cwd:
                    # Nothing was entered; show the full listing again.
                    self.exit_filter()
                self.mode = Mode.NORMAL
                self.filter_text = ""
                return

        if key in ("q", "Escape"):
            self.quit_requested = True
        elif key == "Tab":
            self.switch_focus()
        elif key == "Up":
            self.focused.move(-1)
        elif key == "Down":
            self.focused.move(1)
        elif key == "/":
            self.enter_filter()
        elif key == "Return":
            self.open_selected()
        elif key == "BackSpace":
            self.go_up()
        elif key == "d":
            self.download_selected()
        elif key == "u":
            self.upload_selected()
        elif key == "r":
            self.refresh(self.focus)

"""Panel widget: a Treeview view of one :class:`~sshpanes.browser.PanelState`.

The widget owns no listing state.  :meth:`PanelView.render` mirrors the panel
state (rows, cursor, cwd, focus) and mouse actions are reported back through
callbacks so the browser stays the single writer.
"""

from __future__ import annotations

import logging
import tkinter as tk
from tkinter import ttk
from typing import Callable

from sshpanes.browser import PanelState
from sshpanes.listing import FileEntry
from sshpanes.ui.theme import Theme

logger = logging.getLogger(__name__)

_DIR_MARK = "▸"


class PanelView(ttk.Frame):
    """Header with title and cwd, above a single-selection Treeview."""

    _COLUMNS = ("name", "kind")
    _COL_WIDTHS = {"name": 320, "kind": 70}
    _COL_HEADINGS = {"name": "Name", "kind": "Type"}

    def __init__(
        self,
        master: tk.Widget,
        title: str,
        theme: Theme,
        on_select: Callable[[int], None] | None = None,
        on_activate: Callable[[int], None] | None = None,
        **kwargs,
    ) -> None:
        """Create the panel view."""
        super().__init__(master, **kwargs)
        self._title = title
        self._theme = theme
        self._on_select = on_select
        self._on_activate = on_activate
        self._rendered: tuple[FileEntry, ...] | None = None
        self._syncing = False

        self._build_ui()

    def _build_ui(self) -> None:
        """Build the header and the treeview with its scrollbar."""
        header = ttk.Frame(self)
        header.pack(fill=tk.X, padx=4, pady=(4, 0))

        self._title_label = ttk.Label(
            header, text=self._title, font=("TkDefaultFont", 11, "bold")
        )
        self._title_label.pack(side=tk.LEFT)
        self._cwd_var = tk.StringVar(value="")
        ttk.Label(header, textvariable=self._cwd_var, style="Muted.TLabel").pack(
            side=tk.LEFT, padx=(8, 0)
        )

        tree_frame = ttk.Frame(self)
        tree_frame.pack(fill=tk.BOTH, expand=True, padx=4, pady=4)

        self.tree = ttk.Treeview(
            tree_frame,
            columns=self._COLUMNS,
            show="headings",
            selectmode="browse",
            takefocus=False,
        )
        vsb = ttk.Scrollbar(tree_frame, orient=tk.VERTICAL, command=self.tree.yview)
        self.tree.configure(yscrollcommand=vsb.set)
        vsb.pack(side=tk.RIGHT, fill=tk.Y)
        self.tree.pack(side=tk.LEFT, fill=tk.BOTH, expand=True)

        for col in self._COLUMNS:
            self.tree.heading(col, text=self._COL_HEADINGS[col], anchor=tk.W)
            self.tree.column(col, width=self._COL_WIDTHS[col], minwidth=40, anchor=tk.W)
        self.tree.tag_configure("dir", foreground=self._theme.accent)
        self.tree.tag_configure("file", foreground=self._theme.fg)

        self.tree.bind("<<TreeviewSelect>>", self._on_tree_select)
        self.tree.bind("<Double-1>", self._on_double_click)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self, state: PanelState, focused: bool) -> None:
        """Mirror *state*; rows are rebuilt only when the listing changed."""
        self._title_label.configure(style="Accent.TLabel" if focused else "TLabel")
        self._cwd_var.set(state.cwd)

        entries = tuple(state.entries)
        if entries != self._rendered:
            self._syncing = True
            try:
                self.tree.delete(*self.tree.get_children())
                for index, entry in enumerate(entries):
                    name = f"{_DIR_MARK} {entry.name}" if entry.is_dir else f"  {entry.name}"
                    self.tree.insert(
                        "",
                        tk.END,
                        iid=str(index),
                        values=(name, "dir" if entry.is_dir else "file"),
                        tags=("dir" if entry.is_dir else "file",),
                    )
            finally:
                self._syncing = False
            self._rendered = entries

        self._sync_selection(state.selected_index)

    def _sync_selection(self, index: int | None) -> None:
        current = self.tree.selection()
        wanted = () if index is None else (str(index),)
        if tuple(current) == wanted:
            return
        self._syncing = True
        try:
            if index is None:
                self.tree.selection_remove(*current)
            else:
                self.tree.selection_set(wanted)
                self.tree.see(wanted[0])
        finally:
            self._syncing = False

    # ------------------------------------------------------------------
    # Mouse
    # ------------------------------------------------------------------

    def _on_tree_select(self, event: tk.Event) -> None:  # type: ignore[type-arg]
        if self._syncing or self._on_select is None:
            return
        selection = self.tree.selection()
        if selection:
            self._on_select(int(selection[0]))

    def _on_double_click(self, event: tk.Event) -> None:  # type: ignore[type-arg]
        item_id = self.tree.identify_row(event.y)
        if item_id and self._on_activate is not None:
            self._on_activate(int(item_id))

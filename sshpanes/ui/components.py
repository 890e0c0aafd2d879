"""Small shared widgets for the SSHPanes window."""

from __future__ import annotations

import tkinter as tk
from tkinter import ttk

from sshpanes.ui.theme import Theme

TOOLTIP_DELAY_MS = 500


class StatusBar(ttk.Frame):
    """Browser message line, with an optional hint pinned to the right."""

    def __init__(self, master: tk.Widget, **kwargs) -> None:
        super().__init__(master, **kwargs)
        ttk.Separator(self, orient=tk.HORIZONTAL).pack(side=tk.TOP, fill=tk.X)
        self._message = tk.StringVar(value="Ready")
        self._hint = tk.StringVar(value="")
        self._error = False
        self._label = ttk.Label(self, textvariable=self._message, anchor=tk.W, padding=(6, 2))
        self._label.pack(side=tk.LEFT, fill=tk.X, expand=True)
        ttk.Label(self, textvariable=self._hint, style="Muted.TLabel", padding=(6, 2)).pack(
            side=tk.RIGHT
        )

    def set(self, message: str, error: bool = False) -> None:
        """Show *message*; *error* switches the label to the error colour."""
        if message != self._message.get():
            self._message.set(message)
        if error != self._error:
            self._label.configure(style="Error.TLabel" if error else "TLabel")
            self._error = error

    def set_hint(self, text: str) -> None:
        self._hint.set(text)


class Tooltip:
    """Hover help for a widget, shown after a short delay."""

    def __init__(self, widget: tk.Widget, text: str, theme: Theme) -> None:
        self._widget = widget
        self._text = text
        self._theme = theme
        self._pending: str | None = None
        self._window: tk.Toplevel | None = None
        widget.bind("<Enter>", self._schedule, add="+")
        widget.bind("<Leave>", self._cancel, add="+")
        widget.bind("<ButtonPress>", self._cancel, add="+")

    def _schedule(self, event: tk.Event) -> None:  # type: ignore[type-arg]
        self._cancel(event)
        self._pending = self._widget.after(TOOLTIP_DELAY_MS, self._open)

    def _cancel(self, event: tk.Event | None = None) -> None:  # type: ignore[type-arg]
        if self._pending is not None:
            self._widget.after_cancel(self._pending)
            self._pending = None
        if self._window is not None:
            self._window.destroy()
            self._window = None

    def _open(self) -> None:
        self._pending = None
        if self._window is not None or not self._widget.winfo_ismapped():
            return
        window = tk.Toplevel(self._widget)
        window.wm_overrideredirect(True)
        window.configure(background=self._theme.border, padx=1, pady=1)
        tk.Label(
            window,
            text=self._text,
            background=self._theme.entry,
            foreground=self._theme.fg,
            padx=6,
            pady=3,
        ).pack()
        x = self._widget.winfo_rootx()
        y = self._widget.winfo_rooty() + self._widget.winfo_height() + 2
        window.wm_geometry(f"+{x}+{y}")
        self._window = window

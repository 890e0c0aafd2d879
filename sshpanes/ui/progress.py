"""Transfer footer: the status line and progress bar of the current transfer."""

from __future__ import annotations

import logging
import tkinter as tk
from tkinter import ttk

from sshpanes.transfer import TransferManager
from sshpanes.ui.theme import Theme
from sshpanes.utils.path_helpers import human_readable_size

logger = logging.getLogger(__name__)


class TransferFooter(ttk.Frame):
    """Renders :class:`~sshpanes.transfer.TransferManager` state once per tick.

    Shows ``status_line()`` on the left, speed and ETA of the most recently
    started transfer on the right, and a progress bar that switches to
    indeterminate mode whenever the total size is unknown.  The whole footer
    is blank while nothing is running.
    """

    def __init__(self, master: tk.Widget, theme: Theme, **kwargs) -> None:
        """Create the footer widgets."""
        super().__init__(master, **kwargs)
        self._theme = theme
        self._indeterminate = False

        row = ttk.Frame(self)
        row.pack(fill=tk.X, padx=6)
        self._line_var = tk.StringVar(value="")
        ttk.Label(row, textvariable=self._line_var, style="Accent.TLabel", anchor=tk.W).pack(
            side=tk.LEFT, fill=tk.X, expand=True
        )
        self._rate_var = tk.StringVar(value="")
        ttk.Label(row, textvariable=self._rate_var, style="Muted.TLabel").pack(side=tk.RIGHT)

        self._bar = ttk.Progressbar(self, orient=tk.HORIZONTAL, mode="determinate", maximum=100)
        self._bar.pack(fill=tk.X, padx=6, pady=(0, 4))

    def render(self, transfers: TransferManager) -> None:
        """Redraw from the aggregator; call on the UI thread after ``tick()``."""
        self._line_var.set(transfers.status_line())

        transfer = transfers.aggregator.current()
        if transfer is None:
            self._rate_var.set("")
            self._set_fraction(0.0)
            return

        speed = transfer.speed_bps
        eta = transfer.eta_seconds
        parts = []
        if speed > 0:
            parts.append(f"{human_readable_size(int(speed))}/s")
        if eta is not None:
            if eta < 60:
                parts.append(f"ETA {int(eta)}s")
            else:
                parts.append(f"ETA {int(eta // 60)}m {int(eta % 60)}s")
        self._rate_var.set("  ".join(parts))

        fraction = transfers.aggregator.current_fraction()
        if fraction is None:
            self._set_indeterminate()
        else:
            self._set_fraction(fraction)

    def _set_fraction(self, fraction: float) -> None:
        if self._indeterminate:
            self._bar.stop()
            self._bar.configure(mode="determinate")
            self._indeterminate = False
        self._bar.configure(value=fraction * 100)

    def _set_indeterminate(self) -> None:
        if not self._indeterminate:
            self._bar.configure(mode="indeterminate")
            self._bar.start(15)
            self._indeterminate = True

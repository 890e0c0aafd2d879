"""Main App class and routing logic."""

from __future__ import annotations

import logging
import tkinter as tk
from tkinter import ttk

from sshpanes.config import ConfigManager
from sshpanes.ui.theme import Theme

logger = logging.getLogger(__name__)


class App(ttk.Frame):
    """Root application frame; routes between the host manager and main window."""

    def __init__(
        self,
        master: tk.Tk,
        config: ConfigManager,
        theme: Theme,
        host_name: str | None = None,
    ) -> None:
        """Initialise the App frame and kick off routing."""
        super().__init__(master)
        self.master = master
        self.pack(fill=tk.BOTH, expand=True)
        self._config = config
        self._theme = theme
        self._host_name = host_name
        self._route()

    def _route(self) -> None:
        """Ask for a first host when none is saved; else open the main window."""
        hosts = self._config.get_hosts()
        if self._host_name and self._config.get_host(self._host_name) is None:
            logger.warning("Unknown host %r — falling back to the saved default", self._host_name)
            self._host_name = None

        if not hosts:
            logger.info("No hosts configured — opening the host editor")
            self.after(0, self._launch_host_editor)
            return

        logger.info("%d host(s) configured — launching main window", len(hosts))
        self._launch_main_window()

    def _launch_host_editor(self) -> None:
        """Show the add-host form; the main window opens once a host is saved."""
        from sshpanes.ui.hosts import EditHostDialog

        ttk.Label(
            self,
            text="Add a host to start browsing.",
            style="Muted.TLabel",
            anchor=tk.CENTER,
        ).pack(fill=tk.BOTH, expand=True)

        dialog = EditHostDialog(self, self._config, self._theme, on_save=self._on_first_host)
        dialog.bind("<Destroy>", self._on_editor_closed)

    def _on_editor_closed(self, event: tk.Event) -> None:  # type: ignore[type-arg]
        """Exit when the first-host form is dismissed without saving."""
        if event.widget is not event.widget.winfo_toplevel():
            return
        if not self._config.get_hosts():
            logger.info("No host added — exiting")
            self.master.destroy()

    def _on_first_host(self, name: str) -> None:
        """Called when the first host has been saved."""
        logger.info("First host saved — transitioning to main window")
        for child in self.winfo_children():
            if not isinstance(child, tk.Toplevel):
                child.destroy()
        self._host_name = name
        self._launch_main_window()

    def _launch_main_window(self) -> None:
        """Create and display the dual-panel browser."""
        from sshpanes.ui.main_window import MainWindow

        self._main_window = MainWindow(
            self, config=self._config, theme=self._theme, host_name=self._host_name
        )
        self._main_window.pack(fill=tk.BOTH, expand=True)
        logger.info("Main window launched")

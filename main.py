"""SSHPanes — entry point.

Parses the command line, configures logging, applies the configured ttk
theme, creates the root window, and starts the Tkinter main loop.
"""

from __future__ import annotations

import argparse
import logging
import sys
import tkinter as tk

try:
    from tkinterdnd2 import TkinterDnD
    _DND_AVAILABLE = True
except ImportError:
    TkinterDnD = None  # type: ignore[assignment,misc]
    _DND_AVAILABLE = False

from sshpanes import __version__
from sshpanes.app import App
from sshpanes.config import ConfigManager
from sshpanes.ui.theme import apply_theme, load_theme

_LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s — %(message)s"
_DATE_FORMAT = "%H:%M:%S"

MIN_WIDTH = 900
MIN_HEIGHT = 600
DEFAULT_WIDTH = 1200
DEFAULT_HEIGHT = 750


def _configure_logging(verbose: bool = False) -> None:
    """Set up root logging to stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=_LOG_FORMAT,
        datefmt=_DATE_FORMAT,
        stream=sys.stderr,
    )
    # Quieten noisy third-party loggers
    logging.getLogger("paramiko").setLevel(logging.WARNING)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="sshpanes",
        description="Dual-panel file browser for a remote host over SSH.",
    )
    parser.add_argument("--host", metavar="NAME", help="saved host profile to open")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Bootstrap and run SSHPanes."""
    args = _parse_args(argv)
    _configure_logging(args.verbose)
    log = logging.getLogger(__name__)
    log.info("Starting SSHPanes %s", __version__)

    config = ConfigManager()
    theme = load_theme(config.get("theme"))

    if _DND_AVAILABLE:
        root = TkinterDnD.Tk()
        log.debug("TkinterDnD root window created")
    else:
        root = tk.Tk()
        log.warning("tkinterdnd2 not available — drag-and-drop disabled")
    root.title("SSHPanes")

    root.minsize(MIN_WIDTH, MIN_HEIGHT)
    root.geometry(f"{DEFAULT_WIDTH}x{DEFAULT_HEIGHT}")

    apply_theme(root, theme)

    app = App(root, config=config, theme=theme, host_name=args.host)  # noqa: F841

    log.info("Entering main loop")
    root.mainloop()


if __name__ == "__main__":
    main()

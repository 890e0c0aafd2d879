"""Colour theme for the Tk front end.

The :class:`Theme` is a plain value built once at startup from the config
and handed to every widget that draws colours itself; nothing reads it from
a global.
"""

from __future__ import annotations

import logging
import re
import tkinter as tk
from dataclasses import dataclass
from tkinter import ttk
from typing import Any, Mapping

from sshpanes.config import DEFAULT_THEME

logger = logging.getLogger(__name__)

_HEX_COLOUR = re.compile(r"^#[0-9a-fA-F]{6}$")


def _mix(colour: str, other: str, amount: float) -> str:
    """Blend *colour* towards *other* by *amount* (0.0–1.0)."""
    a = [int(colour[i:i + 2], 16) for i in (1, 3, 5)]
    b = [int(other[i:i + 2], 16) for i in (1, 3, 5)]
    mixed = [round(x + (y - x) * amount) for x, y in zip(a, b)]
    return "#" + "".join(f"{c:02x}" for c in mixed)


@dataclass(frozen=True)
class Theme:
    """The four configured colours plus shades derived from them."""

    bg: str = DEFAULT_THEME["bg"]
    fg: str = DEFAULT_THEME["fg"]
    accent: str = DEFAULT_THEME["accent"]
    muted: str = DEFAULT_THEME["muted"]

    @property
    def entry(self) -> str:
        return _mix(self.bg, "#000000", 0.25)

    @property
    def button(self) -> str:
        return _mix(self.bg, "#ffffff", 0.08)

    @property
    def border(self) -> str:
        return _mix(self.bg, "#ffffff", 0.2)

    @property
    def select(self) -> str:
        return _mix(self.bg, self.accent, 0.35)

    @property
    def error(self) -> str:
        return "#cc9393"


def load_theme(settings: Mapping[str, Any] | None) -> Theme:
    """Build a :class:`Theme` from the ``theme`` config value.

    Unknown keys are ignored and malformed colours fall back to the default
    palette, so a hand-edited config can never stop the UI from starting.
    """
    colours = dict(DEFAULT_THEME)
    for key, value in (settings or {}).items():
        if key not in colours:
            logger.debug("Ignoring unknown theme key %r", key)
            continue
        if isinstance(value, str) and _HEX_COLOUR.match(value):
            colours[key] = value
        else:
            logger.warning("Invalid colour %r for theme.%s — using default", value, key)
    return Theme(**colours)


def apply_theme(root: tk.Misc, theme: Theme) -> None:
    """Configure every ttk style the application uses from *theme*."""
    style = ttk.Style(root)
    style.theme_use("clam")

    # General widget defaults
    style.configure(
        ".",
        background=theme.bg,
        foreground=theme.fg,
        fieldbackground=theme.entry,
        bordercolor=theme.border,
        darkcolor=theme.bg,
        lightcolor=theme.bg,
        troughcolor=theme.bg,
        selectbackground=theme.select,
        selectforeground=theme.fg,
        insertcolor=theme.fg,
        relief="flat",
        font=("TkDefaultFont", 11),
    )

    style.configure("TFrame", background=theme.bg)
    style.configure("TLabelframe", background=theme.bg, foreground=theme.fg)
    style.configure("TLabelframe.Label", background=theme.bg, foreground=theme.accent)

    style.configure("TLabel", background=theme.bg, foreground=theme.fg)
    style.configure("Muted.TLabel", background=theme.bg, foreground=theme.muted)
    style.configure("Accent.TLabel", background=theme.bg, foreground=theme.accent)
    style.configure("Error.TLabel", background=theme.bg, foreground=theme.error)

    style.configure(
        "TButton",
        background=theme.button,
        foreground=theme.fg,
        bordercolor=theme.border,
        focuscolor=theme.accent,
        padding=(8, 4),
    )
    style.map(
        "TButton",
        background=[("active", theme.select), ("pressed", theme.accent)],
        foreground=[("pressed", theme.bg)],
    )

    # Primary actions
    style.configure(
        "Accent.TButton",
        background=theme.accent,
        foreground=theme.bg,
        bordercolor=theme.accent,
        padding=(10, 5),
    )
    style.map(
        "Accent.TButton",
        background=[("active", _mix(theme.accent, "#000000", 0.15))],
    )

    style.configure(
        "TEntry",
        fieldbackground=theme.entry,
        foreground=theme.fg,
        bordercolor=theme.border,
        insertcolor=theme.fg,
    )
    style.configure(
        "TCombobox",
        fieldbackground=theme.entry,
        foreground=theme.fg,
        selectbackground=theme.select,
        bordercolor=theme.border,
    )
    style.map("TCombobox", fieldbackground=[("readonly", theme.entry)])

    style.configure(
        "Treeview",
        background=theme.entry,
        foreground=theme.fg,
        fieldbackground=theme.entry,
        bordercolor=theme.border,
        rowheight=24,
    )
    style.configure(
        "Treeview.Heading",
        background=theme.button,
        foreground=theme.fg,
        relief="flat",
        bordercolor=theme.border,
    )
    style.map(
        "Treeview",
        background=[("selected", theme.select)],
        foreground=[("selected", theme.accent)],
    )
    style.map("Treeview.Heading", background=[("active", theme.select)])

    style.configure(
        "TScrollbar",
        background=theme.button,
        troughcolor=theme.bg,
        bordercolor=theme.border,
        arrowcolor=theme.fg,
    )
    style.configure(
        "TProgressbar",
        background=theme.accent,
        troughcolor=theme.entry,
        bordercolor=theme.border,
    )
    style.configure("TSeparator", background=theme.border)
    style.configure("TRadiobutton", background=theme.bg, foreground=theme.fg)

    root.configure(background=theme.bg)

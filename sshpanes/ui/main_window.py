"""Main dual-panel window for SSHPanes."""

from __future__ import annotations

import logging
import re
import threading
import tkinter as tk
from tkinter import messagebox, ttk

import paramiko

from sshpanes.browser import Browser, Focus, normalize_key
from sshpanes.config import ConfigManager
from sshpanes.transport import (
    ConnectionError,
    Transport,
    UnknownHostError,
    accept_host_key,
    make_transport,
)
from sshpanes.ui.components import StatusBar, Tooltip
from sshpanes.ui.panel import PanelView
from sshpanes.ui.progress import TransferFooter
from sshpanes.ui.theme import Theme

logger = logging.getLogger(__name__)


class MainWindow(ttk.Frame):
    """Header with host selector, local and remote panels, status footer.

    All browser state lives in :class:`~sshpanes.browser.Browser`; this
    widget forwards keys and clicks to it and re-renders after every key
    and every tick of the ``after`` loop.
    """

    def __init__(
        self,
        master: tk.Widget,
        config: ConfigManager,
        theme: Theme,
        host_name: str | None = None,
        **kwargs,
    ) -> None:
        """Build the layout and connect to *host_name* (or the last used host)."""
        super().__init__(master, **kwargs)
        self._config = config
        self._theme = theme
        self._browser: Browser | None = None
        self._transport: Transport | None = None
        self._host_name: str | None = None
        self._tick_ms = max(20, int(config.get("tick_interval_ms", 150)))
        self._after_id: str | None = None
        self._connecting = False

        self._build_layout()
        self._bind_keys()
        self.after(0, self._register_dnd)

        self._refresh_host_list()
        initial = host_name or config.get("last_host") or ""
        names = list(self._host_combo["values"])
        if initial not in names and names:
            initial = names[0]
        if initial:
            self._host_var.set(initial)
            self.after(0, self.connect, initial)
        else:
            self._status_bar.set("No hosts — click Manage to add one.")

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def _build_layout(self) -> None:
        """Construct header, the two panels, and the footer."""
        header = ttk.Frame(self, padding=(8, 6))
        header.pack(fill=tk.X, side=tk.TOP)

        ttk.Label(
            header,
            text="SSHPanes",
            style="Accent.TLabel",
            font=("TkDefaultFont", 14, "bold"),
        ).pack(side=tk.LEFT)

        ctrl_frame = ttk.Frame(header)
        ctrl_frame.pack(side=tk.RIGHT)

        self._target_var = tk.StringVar(value="")
        ttk.Label(ctrl_frame, textvariable=self._target_var, style="Muted.TLabel").pack(
            side=tk.LEFT, padx=(0, 12)
        )

        self._host_var = tk.StringVar()
        self._host_combo = ttk.Combobox(
            ctrl_frame,
            textvariable=self._host_var,
            state="readonly",
            width=26,
            takefocus=False,
        )
        self._host_combo.pack(side=tk.LEFT, padx=4)
        self._host_combo.bind("<<ComboboxSelected>>", self._on_host_selected)
        Tooltip(self._host_combo, "Select a host", self._theme)

        self._manage_btn = ttk.Button(
            ctrl_frame, text="Manage", command=self._on_manage_clicked, takefocus=False
        )
        self._manage_btn.pack(side=tk.LEFT, padx=4)
        Tooltip(self._manage_btn, "Add, edit or delete hosts", self._theme)

        ttk.Separator(self, orient=tk.HORIZONTAL).pack(fill=tk.X)

        # ---- Footer ----
        self._footer = TransferFooter(self, self._theme)
        self._footer.pack(side=tk.BOTTOM, fill=tk.X)
        self._status_bar = StatusBar(self)
        self._status_bar.pack(side=tk.BOTTOM, fill=tk.X)

        # ---- Panels ----
        panels = ttk.Frame(self)
        panels.pack(fill=tk.BOTH, expand=True, padx=4, pady=4)
        panels.columnconfigure(0, weight=1, uniform="panel")
        panels.columnconfigure(1, weight=1, uniform="panel")
        panels.rowconfigure(0, weight=1)

        self._local_view = PanelView(
            panels,
            "Local",
            self._theme,
            on_select=lambda i: self._on_click(Focus.LOCAL, i),
            on_activate=lambda i: self._on_double_click(Focus.LOCAL, i),
        )
        self._local_view.grid(row=0, column=0, sticky="nsew")

        self._remote_view = PanelView(
            panels,
            "Remote",
            self._theme,
            on_select=lambda i: self._on_click(Focus.REMOTE, i),
            on_activate=lambda i: self._on_double_click(Focus.REMOTE, i),
        )
        self._remote_view.grid(row=0, column=1, sticky="nsew")

    def _bind_keys(self) -> None:
        top = self.winfo_toplevel()
        top.bind("<Key>", self._on_key)
        # Tab would otherwise move keyboard focus between widgets
        top.bind("<Tab>", self._on_key)
        top.bind("<Shift-Tab>", self._on_key)
        top.protocol("WM_DELETE_WINDOW", self._request_quit)

    # ------------------------------------------------------------------
    # Hosts
    # ------------------------------------------------------------------

    def _refresh_host_list(self) -> None:
        """Repopulate the host Combobox from the config store."""
        names = [h.get("name", "?") for h in self._config.get_hosts()]
        self._host_combo["values"] = names
        if self._host_var.get() not in names:
            self._host_var.set(self._host_name if self._host_name in names else "")

    def _on_host_selected(self, event: tk.Event | None = None) -> None:  # type: ignore[type-arg]
        name = self._host_var.get()
        if name and name != self._host_name:
            self.connect(name)

    def _on_manage_clicked(self) -> None:
        """Open the host manager dialog."""
        from sshpanes.ui.hosts import HostManagerDialog

        HostManagerDialog(
            self,
            config=self._config,
            theme=self._theme,
            on_hosts_changed=self._on_hosts_changed,
            active_host_name=self._host_name,
        )

    def _on_hosts_changed(self) -> None:
        self._refresh_host_list()
        if self._browser is None and self._host_var.get() == "":
            names = list(self._host_combo["values"])
            if names:
                self._host_var.set(names[0])
                self.connect(names[0])

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def connect(self, name: str) -> None:
        """Open a browser on host *name*, replacing the current one."""
        if self._connecting:
            return
        if self._browser is not None and not self._browser.transfers.is_idle():
            if not messagebox.askyesno(
                "Transfers running",
                "Transfers are still running and will be abandoned. Switch host anyway?",
                parent=self,
            ):
                self._host_var.set(self._host_name or "")
                return
        try:
            transport_config = self._config.transport_config_for(name)
            transport = make_transport(transport_config, self._config.get("transport", "ssh"))
        except (KeyError, ValueError) as exc:
            logger.error("Cannot open host %r: %s", name, exc)
            self._status_bar.set(f"Cannot open host {name}: {exc}", error=True)
            return

        self._close_browser()
        self._connecting = True
        self._status_bar.set(f"Connecting to {transport_config.label}…")
        self._target_var.set(transport_config.label)
        t = threading.Thread(
            target=self._connect_worker, args=(name, transport), name="connect", daemon=True
        )
        t.start()

    def _connect_worker(self, name: str, transport: Transport) -> None:
        """Background thread: connect, take the initial listings, hand over."""
        try:
            transport.connect()
            browser = Browser(
                transport,
                local_start=self._config.get("local_start_path") or None,
                remote_start=self._config.get("remote_start_path") or None,
                max_parallel_downloads=int(self._config.get("max_parallel_downloads", 3)),
                show_hidden=bool(self._config.get("show_hidden_files", True)),
            )
        except UnknownHostError as exc:
            self.after(0, self._on_unknown_host, name, transport, exc)
        except paramiko.AuthenticationException:
            self.after(0, self._on_connect_failed, transport,
                       "Authentication failed — check the key or stored password.")
        except ConnectionError as exc:
            self.after(0, self._on_connect_failed, transport, str(exc))
        except Exception as exc:
            logger.exception("Unexpected error opening %s", name)
            self.after(0, self._on_connect_failed, transport, f"Could not open {name}: {exc}")
        else:
            self.after(0, self._on_connected, name, transport, browser)

    def _on_connected(self, name: str, transport: Transport, browser: Browser) -> None:
        self._connecting = False
        self._transport = transport
        self._browser = browser
        self._host_name = name
        self._config.set("last_host", name)
        logger.info("Browsing %s (%s)", name, transport.config.label)
        self._render()
        self._schedule_tick()

    def _on_connect_failed(self, transport: Transport, message: str) -> None:
        self._connecting = False
        transport.close()
        self._status_bar.set(message, error=True)

    def _on_unknown_host(self, name: str, transport: Transport, exc: UnknownHostError) -> None:
        """Ask the operator to trust an unknown host key, then retry."""
        self._connecting = False
        transport.close()
        if exc.key is None:
            self._status_bar.set(str(exc), error=True)
            return
        trusted = messagebox.askyesno(
            "Unknown host",
            f"The authenticity of host '{exc.hostname}' can't be established.\n\n"
            f"{exc.key_type} key fingerprint:\n{exc.fingerprint}\n\n"
            "Trust this host and add it to ~/.ssh/known_hosts?",
            parent=self,
        )
        if not trusted:
            self._status_bar.set(f"Host key for {exc.hostname} rejected.", error=True)
            return
        try:
            accept_host_key(exc.hostname, exc.key)
        except OSError as err:
            self._status_bar.set(f"Could not save host key: {err}", error=True)
            return
        self.connect(name)

    def _close_browser(self) -> None:
        if self._after_id is not None:
            self.after_cancel(self._after_id)
            self._after_id = None
        if self._transport is not None:
            self._transport.close()
        self._browser = None
        self._transport = None
        self._host_name = None

    # ------------------------------------------------------------------
    # Tick loop
    # ------------------------------------------------------------------

    def _schedule_tick(self) -> None:
        self._after_id = self.after(self._tick_ms, self._tick)

    def _tick(self) -> None:
        self._after_id = None
        if self._browser is None:
            return
        try:
            self._browser.tick()
        except Exception:
            logger.exception("Transfer tick failed")
        self._render()
        self._schedule_tick()

    def _render(self) -> None:
        browser = self._browser
        if browser is None:
            return
        self._local_view.render(browser.local, browser.focus is Focus.LOCAL)
        self._remote_view.render(browser.remote, browser.focus is Focus.REMOTE)
        message = browser.footer_text()
        self._status_bar.set(message, error="error" in message.lower())
        transfers = browser.transfers
        if transfers.is_idle():
            self._status_bar.set_hint("")
        else:
            self._status_bar.set_hint(
                f"{transfers.active_count} running, {transfers.queued_count} queued"
            )
        self._footer.render(transfers)

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def _on_key(self, event: tk.Event) -> str | None:  # type: ignore[type-arg]
        if self._browser is None:
            return None
        key = normalize_key(event.keysym, event.char)
        if key is None:
            return None
        try:
            self._browser.handle_key(key)
        except Exception:
            logger.exception("Error handling key %r", key)
        if self._browser.quit_requested:
            self._browser.quit_requested = False
            self._request_quit()
            return "break"
        self._render()
        return "break"

    def _on_click(self, focus: Focus, index: int) -> None:
        if self._browser is None:
            return
        self._browser.select(focus, index)
        self._render()

    def _on_double_click(self, focus: Focus, index: int) -> None:
        if self._browser is None:
            return
        self._browser.select(focus, index)
        self._browser.open_selected()
        self._render()

    def _request_quit(self) -> None:
        """Close the application, confirming first while transfers run."""
        if self._browser is not None and not self._browser.transfers.is_idle():
            if not messagebox.askyesno(
                "Transfers running",
                "Transfers are still running and will be abandoned. Quit anyway?",
                parent=self,
            ):
                return
        self._close_browser()
        logger.info("Exiting")
        self.winfo_toplevel().destroy()

    # ------------------------------------------------------------------
    # Drag and drop
    # ------------------------------------------------------------------

    def _register_dnd(self) -> None:
        """Register the remote panel as a drop target (requires tkinterdnd2)."""
        try:
            from tkinterdnd2 import DND_FILES
            tree = self._remote_view.tree
            tree.drop_target_register(DND_FILES)
            tree.dnd_bind("<<Drop>>", self._on_drop_to_remote)
            logger.debug("DnD target registered")
        except ImportError:
            logger.debug("tkinterdnd2 not available — skipping DnD registration")
        except Exception:
            logger.exception("Failed to register DnD target")

    def _on_drop_to_remote(self, event: tk.Event) -> None:  # type: ignore[type-arg]
        """Upload files dropped onto the remote panel into its directory."""
        if self._browser is None:
            self._status_bar.set("Not connected — cannot upload files.", error=True)
            return
        paths = parse_dnd_paths(event.data)
        if paths:
            self._browser.upload_paths(paths)
            self._render()


def parse_dnd_paths(data: str) -> list[str]:
    """Split tkinterdnd2 drop data: space-separated, braces around names with spaces."""
    result = []
    for braced, plain in re.findall(r"\{([^}]+)\}|(\S+)", data):
        path = braced or plain
        if path:
            result.append(path)
    return result

"""Host profile dialogs for SSHPanes.

Provides :class:`EditHostDialog` for adding or editing a host profile and
:class:`HostManagerDialog` for listing, adding, editing, and deleting them.
"""

from __future__ import annotations

import logging
import tkinter as tk
from tkinter import filedialog, messagebox, ttk
from typing import Any, Callable

import keyring.errors
import paramiko

from sshpanes.config import ConfigManager
from sshpanes.transport import TransportConfig, delete_password, store_password
from sshpanes.ui.theme import Theme

logger = logging.getLogger(__name__)


def _center_on_parent(window: tk.Toplevel, master: tk.Misc) -> None:
    """Position *window* over the centre of *master*."""
    window.update_idletasks()
    w, h = window.winfo_width(), window.winfo_height()
    px = master.winfo_rootx() + (master.winfo_width() - w) // 2
    py = master.winfo_rooty() + (master.winfo_height() - h) // 2
    window.geometry(f"+{max(0, px)}+{max(0, py)}")


# ---------------------------------------------------------------------------
# EditHostDialog
# ---------------------------------------------------------------------------


class EditHostDialog(tk.Toplevel):
    """Modal form for a host profile; *host* ``None`` adds a new one."""

    def __init__(
        self,
        master: tk.Misc,
        config: ConfigManager,
        theme: Theme,
        host: dict[str, Any] | None = None,
        on_save: Callable[[str], None] | None = None,
    ) -> None:
        """Build the form, pre-filled with *host* data when editing."""
        super().__init__(master)
        self._config = config
        self._host = dict(host or {})
        self._on_save = on_save
        self._old_name: str = self._host.get("name", "")

        self.title("Edit Host" if host else "Add Host")
        self.resizable(False, False)
        self.transient(master.winfo_toplevel())
        self.grab_set()
        self.configure(background=theme.bg)

        self._build_form()
        _center_on_parent(self, master)

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def _build_form(self) -> None:
        """Construct all form widgets."""
        pad = {"padx": 8, "pady": 4}
        body = ttk.Frame(self, padding=16)
        body.pack(fill=tk.BOTH, expand=True)

        self._name_var = tk.StringVar(value=self._host.get("name", ""))
        self._host_var = tk.StringVar(value=self._host.get("host", ""))
        self._port_var = tk.StringVar(value=str(self._host.get("port", 22)))
        self._user_var = tk.StringVar(value=self._host.get("username", "root"))
        self._auth_var = tk.StringVar(value=self._host.get("auth_type", "key"))
        self._key_var = tk.StringVar(value=self._host.get("identity_file", ""))
        self._pass_var = tk.StringVar()

        fields = [
            ("Name:", self._name_var),
            ("Host:", self._host_var),
            ("Port:", self._port_var),
            ("Username:", self._user_var),
        ]
        row = 0
        for label_text, var in fields:
            ttk.Label(body, text=label_text, anchor=tk.W).grid(
                row=row, column=0, sticky=tk.W, **pad
            )
            if var is self._port_var:
                widget: tk.Widget = ttk.Spinbox(body, from_=1, to=65535, textvariable=var, width=8)
            else:
                widget = ttk.Entry(body, textvariable=var, width=32)
            widget.grid(row=row, column=1, sticky=tk.EW, **pad)
            row += 1

        ttk.Label(body, text="Auth type:", anchor=tk.W).grid(
            row=row, column=0, sticky=tk.W, **pad
        )
        self._auth_combo = ttk.Combobox(
            body,
            textvariable=self._auth_var,
            values=["key", "password"],
            state="readonly",
            width=12,
        )
        self._auth_combo.grid(row=row, column=1, sticky=tk.W, **pad)
        self._auth_combo.bind("<<ComboboxSelected>>", self._on_auth_change)
        row += 1

        ttk.Label(body, text="Identity file:", anchor=tk.W).grid(
            row=row, column=0, sticky=tk.W, **pad
        )
        key_frame = ttk.Frame(body)
        key_frame.grid(row=row, column=1, sticky=tk.EW, **pad)
        self._key_entry = ttk.Entry(key_frame, textvariable=self._key_var, width=26)
        self._key_entry.pack(side=tk.LEFT, fill=tk.X, expand=True)
        self._browse_btn = ttk.Button(key_frame, text="Browse…", command=self._browse_key)
        self._browse_btn.pack(side=tk.LEFT, padx=(4, 0))
        row += 1

        ttk.Label(body, text="Password:", anchor=tk.W).grid(
            row=row, column=0, sticky=tk.W, **pad
        )
        self._pass_entry = ttk.Entry(body, textvariable=self._pass_var, show="*", width=32)
        self._pass_entry.grid(row=row, column=1, sticky=tk.EW, **pad)
        row += 1

        ttk.Label(
            body,
            text="Passwords are kept in the system keyring and password hosts always connect through paramiko.",
            style="Muted.TLabel",
            wraplength=340,
        ).grid(row=row, column=0, columnspan=2, sticky=tk.W, **pad)
        row += 1

        body.columnconfigure(1, weight=1)

        self._hint = ttk.Label(body, text="", style="Error.TLabel")
        self._hint.grid(row=row, column=0, columnspan=2, sticky=tk.W, **pad)

        btn_frame = ttk.Frame(self, padding=(16, 8))
        btn_frame.pack(fill=tk.X)
        ttk.Button(btn_frame, text="Cancel", command=self.destroy).pack(side=tk.RIGHT, padx=4)
        ttk.Button(
            btn_frame, text="Save", style="Accent.TButton", command=self._save
        ).pack(side=tk.RIGHT, padx=4)

        self._on_auth_change()

    def _on_auth_change(self, event: tk.Event | None = None) -> None:  # type: ignore[type-arg]
        """Enable the identity-file or password fields for the auth type."""
        is_key = self._auth_var.get() == "key"
        key_state = tk.NORMAL if is_key else tk.DISABLED
        self._key_entry.configure(state=key_state)
        self._browse_btn.configure(state=key_state)
        self._pass_entry.configure(state=tk.DISABLED if is_key else tk.NORMAL)

    def _browse_key(self) -> None:
        """Open a file picker for the SSH identity file."""
        path = filedialog.askopenfilename(
            parent=self,
            title="Select SSH private key",
            initialdir="~/.ssh",
        )
        if path:
            self._key_var.set(path)

    # ------------------------------------------------------------------
    # Save logic
    # ------------------------------------------------------------------

    def _save(self) -> None:
        """Validate fields, persist the host, and close the dialog."""
        name = self._name_var.get().strip()
        address = self._host_var.get().strip()

        if not name:
            self._hint.configure(text="Name cannot be empty.")
            return
        if not address:
            self._hint.configure(text="Host cannot be empty.")
            return
        if name != self._old_name and self._config.get_host(name) is not None:
            self._hint.configure(text=f"A host named '{name}' already exists.")
            return

        try:
            port = int(self._port_var.get())
            if not (1 <= port <= 65535):
                raise ValueError
        except ValueError:
            self._hint.configure(text="Port must be a number between 1 and 65535.")
            return

        auth_type = self._auth_var.get()
        host: dict[str, Any] = {
            "name": name,
            "host": address,
            "port": port,
            "username": self._user_var.get().strip(),
            "auth_type": auth_type,
            "identity_file": self._key_var.get().strip() if auth_type == "key" else "",
        }

        # Rename: delete the old entry first if the name changed
        if self._old_name and self._old_name != name:
            self._config.delete_host(self._old_name)

        self._config.save_host(host)
        logger.info("Host saved via UI: %s", name)

        password = self._pass_var.get()
        if auth_type == "password" and password:
            try:
                store_password(TransportConfig(host=address, username=host["username"]), password)
            except keyring.errors.KeyringError as exc:
                logger.warning("keyring.set_password failed: %s", exc)
                messagebox.showwarning(
                    "Keyring unavailable",
                    f"The password could not be stored: {exc}",
                    parent=self,
                )

        if self._on_save:
            self._on_save(name)
        self.destroy()


# ---------------------------------------------------------------------------
# HostManagerDialog
# ---------------------------------------------------------------------------


class HostManagerDialog(tk.Toplevel):
    """Dialog listing all saved host profiles with management actions."""

    def __init__(
        self,
        master: tk.Misc,
        config: ConfigManager,
        theme: Theme,
        on_hosts_changed: Callable[[], None] | None = None,
        active_host_name: str | None = None,
    ) -> None:
        """Build the host manager dialog."""
        super().__init__(master)
        self._config = config
        self._theme = theme
        self._on_hosts_changed = on_hosts_changed
        self._active_host_name = active_host_name

        self.title("Manage Hosts")
        self.minsize(560, 320)
        self.resizable(True, False)
        self.transient(master.winfo_toplevel())
        self.grab_set()
        self.configure(background=theme.bg)

        self._build_ui()
        self._refresh()
        _center_on_parent(self, master)

    def _build_ui(self) -> None:
        """Construct the Treeview and button row."""
        body = ttk.Frame(self, padding=12)
        body.pack(fill=tk.BOTH, expand=True)

        cols = ("name", "host", "port", "username", "auth")
        self._tree = ttk.Treeview(body, columns=cols, show="headings", selectmode="browse")
        for col, text, width in (
            ("name", "Name", 150),
            ("host", "Host", 160),
            ("port", "Port", 60),
            ("username", "Username", 100),
            ("auth", "Auth", 80),
        ):
            self._tree.heading(col, text=text, anchor=tk.W)
            self._tree.column(col, width=width, anchor=tk.W)

        sb = ttk.Scrollbar(body, orient=tk.VERTICAL, command=self._tree.yview)
        self._tree.configure(yscrollcommand=sb.set)
        self._tree.pack(side=tk.LEFT, fill=tk.BOTH, expand=True)
        sb.pack(side=tk.LEFT, fill=tk.Y)

        self._tree.bind("<Double-1>", lambda _: self._edit_host())

        btn_frame = ttk.Frame(self, padding=(12, 8))
        btn_frame.pack(fill=tk.X)
        ttk.Button(btn_frame, text="Close", command=self.destroy).pack(side=tk.RIGHT, padx=4)
        ttk.Button(btn_frame, text="Delete", command=self._delete_host).pack(
            side=tk.RIGHT, padx=4
        )
        ttk.Button(btn_frame, text="Edit", command=self._edit_host).pack(side=tk.RIGHT, padx=4)
        ttk.Button(
            btn_frame, text="Add", style="Accent.TButton", command=self._add_host
        ).pack(side=tk.RIGHT, padx=4)
        ttk.Button(
            btn_frame, text="Import ~/.ssh/config", command=self._import_ssh_config
        ).pack(side=tk.LEFT, padx=4)

    # ------------------------------------------------------------------
    # Treeview helpers
    # ------------------------------------------------------------------

    def _refresh(self) -> None:
        """Repopulate the Treeview from the current host list."""
        self._tree.delete(*self._tree.get_children())
        for h in self._config.get_hosts():
            name = h.get("name", "?")
            display_name = f"● {name}" if name == self._active_host_name else name
            self._tree.insert(
                "",
                tk.END,
                iid=name,
                values=(
                    display_name,
                    h.get("host", ""),
                    h.get("port", 22),
                    h.get("username", ""),
                    h.get("auth_type", "key"),
                ),
            )

    def _selected_name(self) -> str | None:
        """Return the raw host name of the selected row, or None."""
        sel = self._tree.selection()
        return sel[0] if sel else None

    def _changed(self, name: str | None = None) -> None:
        self._refresh()
        if name:
            self._tree.selection_set(name)
        if self._on_hosts_changed:
            self._on_hosts_changed()

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _add_host(self) -> None:
        EditHostDialog(self, self._config, self._theme, on_save=self._changed)

    def _edit_host(self) -> None:
        """Open EditHostDialog for the selected host."""
        name = self._selected_name()
        if not name:
            messagebox.showinfo("No selection", "Select a host to edit.", parent=self)
            return

        host = self._config.get_host(name)
        if not host:
            messagebox.showerror("Not found", f"Host '{name}' no longer exists.", parent=self)
            self._refresh()
            return

        EditHostDialog(self, self._config, self._theme, host, on_save=self._changed)

    def _delete_host(self) -> None:
        """Confirm, then delete the selected host and its stored password."""
        name = self._selected_name()
        if not name:
            messagebox.showinfo("No selection", "Select a host to delete.", parent=self)
            return
        if name == self._active_host_name:
            messagebox.showinfo(
                "Host in use",
                f"'{name}' is the connected host. Switch to another host first.",
                parent=self,
            )
            return
        if not messagebox.askyesno(
            "Delete host",
            f"Delete host '{name}'? This cannot be undone.",
            parent=self,
        ):
            return

        host = self._config.get_host(name)
        self._config.delete_host(name)
        if host and host.get("auth_type") == "password":
            try:
                delete_password(TransportConfig(host=host["host"], username=host.get("username", "")))
            except keyring.errors.KeyringError as exc:
                logger.warning("keyring.delete_password failed: %s", exc)
        logger.info("Host deleted via UI: %s", name)
        self._changed()

    def _import_ssh_config(self) -> None:
        """Add profiles for the concrete hosts in ``~/.ssh/config``."""
        try:
            imported = self._config.import_ssh_config()
        except (OSError, paramiko.SSHException) as exc:
            logger.warning("ssh_config import failed: %s", exc)
            messagebox.showerror("Import failed", f"Could not read ~/.ssh/config:\n{exc}", parent=self)
            return
        if not imported:
            messagebox.showinfo("Import", "No new hosts found in ~/.ssh/config.", parent=self)
            return
        messagebox.showinfo(
            "Import", f"Imported {len(imported)} host(s): {', '.join(imported)}", parent=self
        )
        self._changed(imported[0])

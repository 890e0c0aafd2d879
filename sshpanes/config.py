"""Configuration and host-profile management for SSHPanes.

All settings are stored as JSON files under ``~/.sshpanes/``.
Passwords are never written to disk — they are delegated to ``keyring``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import paramiko

from sshpanes.transport import TransportConfig

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_THEME: dict[str, str] = {
    "bg": "#3f3f3f",
    "fg": "#dcdccc",
    "accent": "#f0dfaf",
    "muted": "#7f9f7f",
}

DEFAULT_CONFIG: dict[str, Any] = {
    "theme": dict(DEFAULT_THEME),
    "transport": "ssh",
    "ssh_binary": "ssh",
    "scp_binary": "scp",
    "max_parallel_downloads": 3,
    "tick_interval_ms": 150,
    "local_start_path": str(Path.home()),
    "remote_start_path": "",
    "show_hidden_files": True,
    "last_host": "",
}

DEFAULT_HOST: dict[str, Any] = {
    "port": 22,
    "username": "root",
    "identity_file": "",
    "auth_type": "key",
}

# ---------------------------------------------------------------------------
# ConfigManager
# ---------------------------------------------------------------------------


class ConfigManager:
    """Manages application settings and host profiles.

    Writes files atomically (write-to-temp, then rename) to prevent
    corruption on unexpected exit.  A corrupt file triggers a warning and
    a safe reset — it never crashes the application.
    """

    def __init__(self, base_dir: Path | None = None) -> None:
        """Initialise, creating ``~/.sshpanes/`` if necessary."""
        self._base = base_dir or Path.home() / ".sshpanes"
        self._config_path = self._base / "config.json"
        self._hosts_path = self._base / "hosts.json"

        self._base.mkdir(parents=True, exist_ok=True)
        self._config: dict[str, Any] = self._load_config()
        self._hosts: list[dict[str, Any]] = self._load_hosts()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _atomic_write(self, path: Path, data: Any) -> None:
        """Serialise *data* as JSON and write atomically to *path*."""
        tmp = path.with_suffix(".tmp")
        try:
            tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
            tmp.replace(path)
        except OSError as exc:
            logger.error("Failed to write %s: %s", path, exc)
            raise

    def _load_config(self) -> dict[str, Any]:
        """Load ``config.json``, resetting to defaults on corruption."""
        if not self._config_path.exists():
            logger.debug("No config file — creating defaults")
            config = _defaults()
            self._atomic_write(self._config_path, config)
            return config

        try:
            raw = self._config_path.read_text(encoding="utf-8")
            loaded = json.loads(raw)
            if not isinstance(loaded, dict):
                raise ValueError("Config root must be a JSON object")
            # Merge with defaults so new keys are always present
            merged = _defaults()
            merged.update(loaded)
            if isinstance(loaded.get("theme"), dict):
                merged["theme"] = {**DEFAULT_THEME, **loaded["theme"]}
            return merged
        except (json.JSONDecodeError, ValueError, OSError) as exc:
            logger.warning("Corrupt config.json (%s) — resetting to defaults", exc)
            config = _defaults()
            self._atomic_write(self._config_path, config)
            return config

    def _load_hosts(self) -> list[dict[str, Any]]:
        """Load ``hosts.json``, returning an empty list on corruption.

        A legacy file whose root is an object (bare or wrapped alias map) is
        converted to the list form and written back; an object with nothing
        recognisable is copied to ``hosts.json.bak`` and left alone.
        """
        if not self._hosts_path.exists():
            return []
        try:
            raw = self._hosts_path.read_text(encoding="utf-8")
            loaded = json.loads(raw)
            if isinstance(loaded, dict):
                hosts = _migrate_legacy_hosts(loaded)
                if not hosts and loaded:
                    # Unrecognised content is kept next to the store; a later
                    # save_host() replaces hosts.json itself.
                    backup = self._hosts_path.with_suffix(".json.bak")
                    backup.write_text(raw, encoding="utf-8")
                    logger.warning(
                        "hosts.json has no recognisable host entries — kept a copy at %s",
                        backup,
                    )
                    return []
                self._atomic_write(self._hosts_path, hosts)
                logger.info("Migrated %d legacy host entries", len(hosts))
                return hosts
            if not isinstance(loaded, list):
                raise ValueError("Hosts root must be a JSON array")
            return [_normalise_host(h) for h in loaded if isinstance(h, dict) and h.get("name")]
        except (json.JSONDecodeError, ValueError, OSError) as exc:
            logger.warning("Corrupt hosts.json (%s) — resetting to empty list", exc)
            self._atomic_write(self._hosts_path, [])
            return []

    # ------------------------------------------------------------------
    # Config access
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for *key*, or *default* if missing."""
        return self._config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set *key* to *value* and persist the config file."""
        self._config[key] = value
        self._atomic_write(self._config_path, self._config)
        logger.debug("Config updated: %s = %r", key, value)

    def get_all(self) -> dict[str, Any]:
        """Return a shallow copy of the full config dict."""
        return dict(self._config)

    # ------------------------------------------------------------------
    # Host profiles
    # ------------------------------------------------------------------

    def get_hosts(self) -> list[dict[str, Any]]:
        """Return a copy of all saved host profiles."""
        return [dict(h) for h in self._hosts]

    def save_host(self, host: dict[str, Any]) -> None:
        """Upsert a host profile by its ``name`` field.

        Passwords must NOT be in *host* — store them via ``keyring``.
        """
        name = host.get("name")
        if not name:
            raise ValueError("Host must have a non-empty 'name' field")

        host = _normalise_host({k: v for k, v in host.items() if k != "password"})

        for i, existing in enumerate(self._hosts):
            if existing.get("name") == name:
                self._hosts[i] = host
                break
        else:
            self._hosts.append(host)

        self._atomic_write(self._hosts_path, self._hosts)
        logger.info("Host saved: %s", name)

    def delete_host(self, name: str) -> bool:
        """Delete the host identified by *name*.

        Returns ``True`` if a host was deleted, ``False`` if not found.
        """
        original_len = len(self._hosts)
        self._hosts = [h for h in self._hosts if h.get("name") != name]
        if len(self._hosts) < original_len:
            self._atomic_write(self._hosts_path, self._hosts)
            logger.info("Host deleted: %s", name)
            return True
        logger.warning("delete_host: host not found: %s", name)
        return False

    def get_host(self, name: str) -> dict[str, Any] | None:
        """Return the host dict for *name*, or ``None`` if not found."""
        for host in self._hosts:
            if host.get("name") == name:
                return dict(host)
        return None

    def import_ssh_config(self, path: Path | None = None) -> list[str]:
        """Add a host profile for every concrete alias in an OpenSSH config.

        Wildcard and negated patterns are skipped, as are aliases already
        saved.  Returns the imported names, sorted.

        Raises:
            OSError: *path* (default ``~/.ssh/config``) cannot be read.
        """
        path = path or Path.home() / ".ssh" / "config"
        ssh_config = paramiko.SSHConfig.from_path(str(path))
        existing = {h.get("name") for h in self._hosts}
        aliases = sorted(
            alias
            for alias in ssh_config.get_hostnames()
            if not any(c in alias for c in "*?") and not alias.startswith("!")
        )

        imported = []
        for alias in aliases:
            if alias in existing:
                logger.debug("ssh_config host %s already saved — skipping", alias)
                continue
            entry = ssh_config.lookup(alias)
            identity = entry.get("identityfile") or [""]
            host = _normalise_host(
                {
                    "name": alias,
                    "host": entry.get("hostname") or alias,
                    "username": entry.get("user") or "root",
                    "port": entry.get("port") or 22,
                    "identity_file": identity[0],
                    "tags": ["ssh_config"],
                }
            )
            self._hosts.append(host)
            imported.append(alias)

        if imported:
            self._atomic_write(self._hosts_path, self._hosts)
        logger.info("Imported %d host(s) from %s", len(imported), path)
        return imported

    def transport_config_for(self, name: str) -> TransportConfig:
        """Build the :class:`TransportConfig` for the host *name*.

        Raises:
            KeyError: No host with that name.
        """
        host = self.get_host(name)
        if host is None:
            raise KeyError(name)
        return TransportConfig(
            host=host["host"],
            port=int(host.get("port") or 22),
            username=host.get("username") or "",
            identity_file=host.get("identity_file") or None,
            auth_type=host.get("auth_type") or "key",
            ssh_binary=self.get("ssh_binary") or "ssh",
            scp_binary=self.get("scp_binary") or "scp",
        )


def _defaults() -> dict[str, Any]:
    config = dict(DEFAULT_CONFIG)
    config["theme"] = dict(DEFAULT_THEME)
    return config


def _normalise_host(host: dict[str, Any]) -> dict[str, Any]:
    merged = {**DEFAULT_HOST, **host}
    try:
        merged["port"] = int(merged["port"])
    except (TypeError, ValueError):
        merged["port"] = 22
    return merged


def _migrate_legacy_hosts(data: dict[str, Any]) -> list[dict[str, Any]]:
    """Convert an alias-keyed host map into a list of host profiles.

    Accepts the bare map ``{"alias": {"ip": ..., ...}}`` and the wrapped
    form ``{"hosts": {...}, "folders": [...]}``.  An entry's own ``name``
    wins over its alias.
    """
    if isinstance(data.get("hosts"), dict):
        data = data["hosts"]
    hosts = []
    for alias, entry in data.items():
        if not isinstance(entry, dict):
            logger.warning("Skipping malformed legacy host %r", alias)
            continue
        address = entry.get("host") or entry.get("ip")
        if not address:
            logger.warning("Skipping legacy host %r without an address", alias)
            continue
        host = {k: v for k, v in entry.items() if k not in ("ip", "password")}
        host["name"] = entry.get("name") or alias
        host["host"] = address
        hosts.append(_normalise_host(host))
    return hosts

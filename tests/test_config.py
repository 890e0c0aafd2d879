"""Tests for sshpanes/config.py — ConfigManager."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from sshpanes.config import DEFAULT_CONFIG, DEFAULT_THEME, ConfigManager


@pytest.fixture()
def tmp_config(tmp_path: Path) -> ConfigManager:
    """Return a ConfigManager backed by a temporary directory."""
    return ConfigManager(base_dir=tmp_path)


class TestDefaultConfig:
    def test_default_created_when_missing(self, tmp_path: Path) -> None:
        """Config file is created with defaults if it does not exist."""
        cm = ConfigManager(base_dir=tmp_path)
        assert (tmp_path / "config.json").exists()
        assert cm.get("theme") == DEFAULT_THEME

    def test_all_default_keys_present(self, tmp_config: ConfigManager) -> None:
        """Every key in DEFAULT_CONFIG is present after initialisation."""
        for key in DEFAULT_CONFIG:
            assert key in tmp_config.get_all()

    def test_transfer_defaults(self, tmp_config: ConfigManager) -> None:
        assert tmp_config.get("transport") == "ssh"
        assert tmp_config.get("max_parallel_downloads") == 3
        assert tmp_config.get("tick_interval_ms") == 150

    def test_new_keys_merged_into_old_file(self, tmp_path: Path) -> None:
        """A config written by an older version gains the missing keys."""
        (tmp_path / "config.json").write_text(
            json.dumps({"transport": "paramiko"}), encoding="utf-8"
        )
        cm = ConfigManager(base_dir=tmp_path)
        assert cm.get("transport") == "paramiko"
        assert cm.get("show_hidden_files") is True


class TestCorruptConfig:
    def test_corrupt_json_resets_to_defaults(self, tmp_path: Path) -> None:
        """A corrupt config.json triggers a silent reset, not a crash."""
        config_path = tmp_path / "config.json"
        config_path.write_text("{ this is not valid json !!!", encoding="utf-8")
        cm = ConfigManager(base_dir=tmp_path)
        assert cm.get("theme") == DEFAULT_THEME

    def test_non_dict_root_resets(self, tmp_path: Path) -> None:
        """A config.json whose root is not an object triggers a reset."""
        config_path = tmp_path / "config.json"
        config_path.write_text("[1, 2, 3]", encoding="utf-8")
        cm = ConfigManager(base_dir=tmp_path)
        assert cm.get("transport") == "ssh"

    def test_reset_preserves_new_file(self, tmp_path: Path) -> None:
        """After a corrupt-reset, the config file is valid JSON."""
        config_path = tmp_path / "config.json"
        config_path.write_text("GARBAGE", encoding="utf-8")
        ConfigManager(base_dir=tmp_path)
        loaded = json.loads(config_path.read_text(encoding="utf-8"))
        assert isinstance(loaded, dict)


class TestGetSet:
    def test_set_persists_to_disk(self, tmp_path: Path) -> None:
        """set() writes the updated value to disk."""
        cm = ConfigManager(base_dir=tmp_path)
        cm.set("last_host", "web01")
        cm2 = ConfigManager(base_dir=tmp_path)
        assert cm2.get("last_host") == "web01"

    def test_partial_theme_is_completed(self, tmp_path: Path) -> None:
        """A theme with only some colours keeps the defaults for the rest."""
        cm = ConfigManager(base_dir=tmp_path)
        cm.set("theme", {"bg": "#000000"})
        theme = ConfigManager(base_dir=tmp_path).get("theme")
        assert theme["bg"] == "#000000"
        assert theme["fg"] == DEFAULT_THEME["fg"]

    def test_get_unknown_key_returns_default(self, tmp_config: ConfigManager) -> None:
        """get() returns the provided default for unknown keys."""
        assert tmp_config.get("nonexistent_key", "fallback") == "fallback"

    def test_get_unknown_key_returns_none_by_default(
        self, tmp_config: ConfigManager
    ) -> None:
        assert tmp_config.get("nonexistent_key") is None


class TestHosts:
    def test_save_and_retrieve_host(self, tmp_config: ConfigManager) -> None:
        """A saved host can be retrieved by name with defaults filled in."""
        tmp_config.save_host({"name": "web01", "host": "10.0.0.5", "username": "deploy"})
        host = tmp_config.get_host("web01")
        assert host is not None
        assert host["host"] == "10.0.0.5"
        assert host["port"] == 22
        assert host["auth_type"] == "key"

    def test_save_strips_password(self, tmp_path: Path) -> None:
        """Passwords never reach hosts.json."""
        cm = ConfigManager(base_dir=tmp_path)
        cm.save_host({"name": "db", "host": "10.0.0.6", "password": "hunter2"})
        assert "password" not in cm.get_host("db")  # type: ignore[operator]
        assert "hunter2" not in (tmp_path / "hosts.json").read_text(encoding="utf-8")

    def test_upsert_replaces_existing_host(self, tmp_config: ConfigManager) -> None:
        """Saving a host with an existing name replaces it."""
        tmp_config.save_host({"name": "web01", "host": "192.168.1.1"})
        tmp_config.save_host({"name": "web01", "host": "10.0.0.1", "port": "2222"})
        host = tmp_config.get_host("web01")
        assert host["host"] == "10.0.0.1"  # type: ignore[index]
        assert host["port"] == 2222  # type: ignore[index]
        assert len(tmp_config.get_hosts()) == 1

    def test_save_host_without_name_raises(self, tmp_config: ConfigManager) -> None:
        """save_host raises ValueError if the host has no name."""
        with pytest.raises(ValueError, match="non-empty 'name'"):
            tmp_config.save_host({"host": "192.168.1.1"})

    def test_delete_existing_host(self, tmp_config: ConfigManager) -> None:
        tmp_config.save_host({"name": "gone", "host": "192.168.1.1"})
        assert tmp_config.delete_host("gone") is True
        assert tmp_config.get_host("gone") is None

    def test_delete_nonexistent_returns_false(self, tmp_config: ConfigManager) -> None:
        assert tmp_config.delete_host("ghost") is False

    def test_delete_persists_to_disk(self, tmp_path: Path) -> None:
        """After deletion, a re-loaded ConfigManager does not see the host."""
        cm = ConfigManager(base_dir=tmp_path)
        cm.save_host({"name": "gone", "host": "192.168.1.1"})
        cm.delete_host("gone")
        assert ConfigManager(base_dir=tmp_path).get_host("gone") is None

    def test_corrupt_hosts_file_resets(self, tmp_path: Path) -> None:
        (tmp_path / "hosts.json").write_text("nope", encoding="utf-8")
        cm = ConfigManager(base_dir=tmp_path)
        assert cm.get_hosts() == []
        assert json.loads((tmp_path / "hosts.json").read_text(encoding="utf-8")) == []


class TestLegacyMigration:
    def test_dict_root_converted_to_list(self, tmp_path: Path) -> None:
        """An alias-keyed hosts file is converted and written back."""
        legacy = {
            "nas": {"ip": "192.168.1.20", "username": "admin", "password": "secret"},
            "broken": "not a dict",
            "nowhere": {"username": "x"},
        }
        hosts_path = tmp_path / "hosts.json"
        hosts_path.write_text(json.dumps(legacy), encoding="utf-8")

        cm = ConfigManager(base_dir=tmp_path)

        assert [h["name"] for h in cm.get_hosts()] == ["nas"]
        nas = cm.get_host("nas")
        assert nas["host"] == "192.168.1.20"  # type: ignore[index]
        assert "ip" not in nas  # type: ignore[operator]
        assert "password" not in nas  # type: ignore[operator]
        on_disk = json.loads(hosts_path.read_text(encoding="utf-8"))
        assert isinstance(on_disk, list)
        assert on_disk[0]["name"] == "nas"

    def test_wrapped_hosts_map_converted(self, tmp_path: Path) -> None:
        """A ``{"hosts": {...}, "folders": [...]}`` file keeps its hosts."""
        wrapped = {
            "hosts": {"prod-web": {"name": "web", "host": "10.0.0.5", "port": 2222}},
            "folders": ["Prod"],
        }
        hosts_path = tmp_path / "hosts.json"
        hosts_path.write_text(json.dumps(wrapped), encoding="utf-8")

        cm = ConfigManager(base_dir=tmp_path)

        assert [h["name"] for h in cm.get_hosts()] == ["web"]
        assert cm.get_host("web")["port"] == 2222  # type: ignore[index]
        on_disk = json.loads(hosts_path.read_text(encoding="utf-8"))
        assert isinstance(on_disk, list)
        assert on_disk[0]["host"] == "10.0.0.5"

    def test_unrecognised_map_is_not_overwritten(self, tmp_path: Path) -> None:
        raw = json.dumps({"folders": ["Prod"]})
        hosts_path = tmp_path / "hosts.json"
        hosts_path.write_text(raw, encoding="utf-8")

        cm = ConfigManager(base_dir=tmp_path)

        assert cm.get_hosts() == []
        assert hosts_path.read_text(encoding="utf-8") == raw
        assert (tmp_path / "hosts.json.bak").read_text(encoding="utf-8") == raw


class TestImportSshConfig:
    def test_imports_concrete_hosts(self, tmp_config: ConfigManager, tmp_path: Path) -> None:
        ssh_config = tmp_path / "ssh_config"
        ssh_config.write_text(
            "Host *\n"
            "    ServerAliveInterval 30\n"
            "\n"
            "Host web db-?\n"
            "    HostName 10.0.0.5\n"
            "    User deploy\n"
            "    Port 2222\n"
            "    IdentityFile /keys/web\n"
            "\n"
            "Host nas\n"
            "\n"
            "Host old\n"
            "    HostName 10.9.9.9\n",
            encoding="utf-8",
        )
        tmp_config.save_host({"name": "old", "host": "10.1.1.1"})

        imported = tmp_config.import_ssh_config(ssh_config)

        assert imported == ["nas", "web"]
        web = tmp_config.get_host("web")
        assert web["host"] == "10.0.0.5"  # type: ignore[index]
        assert web["username"] == "deploy"  # type: ignore[index]
        assert web["port"] == 2222  # type: ignore[index]
        assert web["identity_file"] == "/keys/web"  # type: ignore[index]
        assert web["tags"] == ["ssh_config"]  # type: ignore[index]
        nas = tmp_config.get_host("nas")
        assert nas["host"] == "nas"  # type: ignore[index]
        assert nas["username"] == "root"  # type: ignore[index]
        assert nas["port"] == 22  # type: ignore[index]
        assert tmp_config.get_host("old")["host"] == "10.1.1.1"  # type: ignore[index]
        assert tmp_config.get_host("db-?") is None

    def test_missing_file_raises(self, tmp_config: ConfigManager, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            tmp_config.import_ssh_config(tmp_path / "absent")


class TestTransportConfig:
    def test_built_from_host_and_settings(self, tmp_config: ConfigManager) -> None:
        tmp_config.set("ssh_binary", "/usr/local/bin/ssh")
        tmp_config.save_host(
            {
                "name": "web01",
                "host": "web01.example.com",
                "port": 2222,
                "username": "deploy",
                "identity_file": "~/.ssh/id_ed25519",
            }
        )
        cfg = tmp_config.transport_config_for("web01")
        assert cfg.host == "web01.example.com"
        assert cfg.port == 2222
        assert cfg.username == "deploy"
        assert cfg.identity_file == "~/.ssh/id_ed25519"
        assert cfg.auth_type == "key"
        assert cfg.ssh_binary == "/usr/local/bin/ssh"
        assert cfg.scp_binary == "scp"

    def test_empty_identity_is_none(self, tmp_config: ConfigManager) -> None:
        tmp_config.save_host({"name": "db", "host": "db"})
        assert tmp_config.transport_config_for("db").identity_file is None

    def test_unknown_host_raises(self, tmp_config: ConfigManager) -> None:
        with pytest.raises(KeyError):
            tmp_config.transport_config_for("missing")

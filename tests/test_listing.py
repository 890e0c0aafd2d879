"""Tests for sshpanes/listing.py — local and remote directory access."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import FakeTransport

from sshpanes.listing import (
    PARENT_ENTRY,
    FileEntry,
    apply_filter,
    list_local,
    list_remote,
    parse_ls_output,
    probe_remote_size,
    resolve_remote_home,
    walk_local,
    walk_remote,
    with_parent_entry,
)
from sshpanes.transport import CommandResult


def _names(entries: list[FileEntry]) -> list[str]:
    return [e.name for e in entries]


# ---------------------------------------------------------------------------
# Sorting and filtering
# ---------------------------------------------------------------------------


class TestParseLsOutput:
    def test_directories_first_case_insensitive(self) -> None:
        entries = parse_ls_output("zeta.txt\nAlpha/\nbeta/\nApple.txt\n\n")
        assert _names(entries) == ["Alpha", "beta", "Apple.txt", "zeta.txt"]
        assert [e.is_dir for e in entries] == [True, True, False, False]

    def test_blank_output(self) -> None:
        assert parse_ls_output("\n\n") == []


class TestFilter:
    def test_case_insensitive_substring(self) -> None:
        entries = [FileEntry("Report.PDF", False), FileEntry("notes", False)]
        assert _names(apply_filter(entries, "report")) == ["Report.PDF"]

    def test_parent_entry_always_kept(self) -> None:
        entries = with_parent_entry([FileEntry("a.txt", False)], has_parent=True)
        assert apply_filter(entries, "zzz") == [PARENT_ENTRY]

    def test_empty_text_keeps_everything(self) -> None:
        entries = [FileEntry("a", True), FileEntry("b", False)]
        assert apply_filter(entries, "") == entries

    def test_root_has_no_parent_entry(self) -> None:
        assert with_parent_entry([], has_parent=False) == []


# ---------------------------------------------------------------------------
# Local
# ---------------------------------------------------------------------------


class TestListLocal:
    def test_sorted_dirs_before_files(self, tmp_path: Path) -> None:
        (tmp_path / "b.txt").touch()
        (tmp_path / "A.txt").touch()
        (tmp_path / "zdir").mkdir()
        (tmp_path / "Cdir").mkdir()
        assert _names(list_local(tmp_path)) == ["Cdir", "zdir", "A.txt", "b.txt"]

    def test_missing_directory_raises(self, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            list_local(tmp_path / "missing")

    def test_walk_local(self, tmp_path: Path) -> None:
        (tmp_path / "sub" / "deeper").mkdir(parents=True)
        (tmp_path / "top.txt").write_text("x")
        (tmp_path / "sub" / "inner.txt").write_text("y")
        directories, files = walk_local(tmp_path)
        assert directories == ["sub", "sub/deeper"]
        assert [rel for _, rel in files] == ["sub/inner.txt", "top.txt"]
        assert files[0][0] == tmp_path / "sub" / "inner.txt"


# ---------------------------------------------------------------------------
# Remote
# ---------------------------------------------------------------------------


class TestListRemote:
    def test_lists_and_sorts(self, fake_transport: FakeTransport) -> None:
        fake_transport.add_file("/srv/b.log", b"1")
        fake_transport.add_file("/srv/A.log", b"2")
        fake_transport.add_dir("/srv/cache")
        assert _names(list_remote(fake_transport, "/srv")) == ["cache", "A.log", "b.log"]

    def test_unreadable_path_returns_empty(self, fake_transport: FakeTransport) -> None:
        fake_transport.add_dir("/forbidden")
        fake_transport.unreadable.add("/forbidden")
        assert list_remote(fake_transport, "/forbidden") == []

    def test_path_is_shell_escaped(self, fake_transport: FakeTransport) -> None:
        fake_transport.add_file("/srv/it's here/x", b"")
        assert _names(list_remote(fake_transport, "/srv/it's here")) == ["x"]
        assert fake_transport.commands[-1] == "LC_ALL=C ls -p -1 -- '/srv/it'\\''s here'"


class TestProbeRemoteSize:
    def test_known_size(self, fake_transport: FakeTransport) -> None:
        fake_transport.add_file("/data/f.bin", b"x" * 42)
        assert probe_remote_size(fake_transport, "/data/f.bin") == 42

    def test_failure_is_none(self, fake_transport: FakeTransport) -> None:
        assert probe_remote_size(fake_transport, "/nope") is None

    def test_unparsable_is_none(self, fake_transport: FakeTransport, monkeypatch) -> None:
        monkeypatch.setattr(fake_transport, "stat_size", lambda p: CommandResult(0, "12 bytes\n"))
        assert probe_remote_size(fake_transport, "/data/f.bin") is None


class TestWalkRemote:
    def test_depth_first_with_sizes(self, fake_transport: FakeTransport) -> None:
        fake_transport.add_file("/r/top.txt", b"abc")
        fake_transport.add_file("/r/sub/inner.txt", b"12345")
        fake_transport.add_dir("/r/empty")
        files = walk_remote(fake_transport, "/r")
        assert [(f.relative_path, f.size) for f in files] == [
            ("sub/inner.txt", 5),
            ("top.txt", 3),
        ]
        assert files[0].remote_path == "/r/sub/inner.txt"

    def test_unlistable_subdirectory_contributes_nothing(
        self, fake_transport: FakeTransport
    ) -> None:
        fake_transport.add_file("/r/locked/secret", b"s")
        fake_transport.add_file("/r/open.txt", b"o")
        fake_transport.unreadable.add("/r/locked")
        assert [f.relative_path for f in walk_remote(fake_transport, "/r")] == ["open.txt"]


class TestResolveRemoteHome:
    def test_listable_home(self, fake_transport: FakeTransport) -> None:
        assert resolve_remote_home(fake_transport) == "/home/user"

    def test_unlistable_home_falls_back_to_root(self, fake_transport: FakeTransport) -> None:
        fake_transport.unreadable.add("/home/user")
        assert resolve_remote_home(fake_transport) == "/"

"""Tests for sshpanes/browser.py — panel navigation, filter mode and hotkeys."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import FakeTransport, wait_until

from sshpanes.browser import Browser, Focus, Mode, PanelState, normalize_key
from sshpanes.listing import FileEntry


def _names(panel: PanelState) -> list[str]:
    return [e.name for e in panel.entries]


@pytest.fixture()
def remote(fake_transport: FakeTransport) -> FakeTransport:
    fake_transport.add_file("/home/user/alpha.txt", b"a")
    fake_transport.add_file("/home/user/beta.log", b"bb")
    fake_transport.add_file("/home/user/projects/readme.md", b"r")
    fake_transport.add_file("/home/user/photos/cat.jpg", b"c" * 10)
    return fake_transport


@pytest.fixture()
def local_dir(tmp_path: Path) -> Path:
    root = tmp_path / "local"
    (root / "docs").mkdir(parents=True)
    (root / "upload.txt").write_text("payload")
    return root


@pytest.fixture()
def browser(remote: FakeTransport, local_dir: Path) -> Browser:
    return Browser(remote, local_start=local_dir)


def _press(browser: Browser, *keys: str) -> None:
    for key in keys:
        browser.handle_key(key)


def _select(panel: PanelState, name: str) -> None:
    panel.select(_names(panel).index(name))


# ---------------------------------------------------------------------------
# PanelState
# ---------------------------------------------------------------------------


class TestPanelState:
    def test_clamp_empty(self) -> None:
        panel = PanelState(cwd="/", selected_index=4)
        panel.clamp()
        assert panel.selected_index is None
        assert panel.selected_entry() is None

    def test_move_stays_in_range(self) -> None:
        panel = PanelState(cwd="/")
        panel.set_listing([FileEntry("a", False), FileEntry("b", False)])
        panel.move(-1)
        assert panel.selected_index == 0
        panel.move(5)
        assert panel.selected_index == 1

    def test_shrinking_listing_keeps_cursor_valid(self) -> None:
        panel = PanelState(cwd="/")
        panel.set_listing([FileEntry(n, False) for n in "abcd"])
        panel.select(3)
        panel.set_listing([FileEntry("a", False)], reset_selection=False)
        assert panel.selected_index == 0


# ---------------------------------------------------------------------------
# Initial state and navigation
# ---------------------------------------------------------------------------


class TestNavigation:
    def test_initial_state(self, browser: Browser, local_dir: Path) -> None:
        assert browser.focus is Focus.REMOTE
        assert browser.mode is Mode.NORMAL
        assert browser.remote.cwd == "/home/user"
        assert _names(browser.remote) == ["..", "photos", "projects", "alpha.txt", "beta.log"]
        assert browser.remote.selected_index == 0
        assert browser.local.cwd == str(local_dir)
        assert _names(browser.local) == ["..", "docs", "upload.txt"]

    def test_unlistable_home_starts_at_root(self, remote: FakeTransport, local_dir: Path) -> None:
        remote.unreadable.add("/home/user")
        browser = Browser(remote, local_start=local_dir)
        assert browser.remote.cwd == "/"
        assert _names(browser.remote) == ["home"]

    def test_enter_directory_and_parent(self, browser: Browser) -> None:
        _select(browser.remote, "projects")
        _press(browser, "Return")
        assert browser.remote.cwd == "/home/user/projects"
        assert _names(browser.remote) == ["..", "readme.md"]
        assert browser.remote.selected_index == 0

        _press(browser, "Return")  # ".." is selected
        assert browser.remote.cwd == "/home/user"

        _press(browser, "BackSpace")
        assert browser.remote.cwd == "/home"

    def test_return_on_file_does_nothing(self, browser: Browser) -> None:
        _select(browser.remote, "alpha.txt")
        _press(browser, "Return")
        assert browser.remote.cwd == "/home/user"

    def test_arrows_and_tab(self, browser: Browser) -> None:
        _press(browser, "Down", "Down")
        assert browser.remote.selected_index == 2
        _press(browser, "Tab", "Down")
        assert browser.focus is Focus.LOCAL
        assert browser.local.selected_index == 1
        assert browser.remote.selected_index == 2

    def test_local_error_keeps_panel(self, browser: Browser, local_dir: Path) -> None:
        _press(browser, "Tab")
        _select(browser.local, "docs")
        (local_dir / "docs").rmdir()
        before = list(browser.local.entries)

        _press(browser, "Return")

        assert browser.local.cwd == str(local_dir)
        assert browser.local.entries == before
        assert browser.message.startswith("Local read error:")

    def test_quit_keys(self, browser: Browser) -> None:
        _press(browser, "q")
        assert browser.quit_requested

    def test_hidden_files(self, remote: FakeTransport, local_dir: Path) -> None:
        remote.add_file("/home/user/.profile", b"")
        visible = Browser(remote, local_start=local_dir, show_hidden=True)
        hidden = Browser(remote, local_start=local_dir, show_hidden=False)
        assert ".profile" in _names(visible.remote)
        assert ".profile" not in _names(hidden.remote)
        assert ".." in _names(hidden.remote)


# ---------------------------------------------------------------------------
# Filter mode
# ---------------------------------------------------------------------------


class TestFilterMode:
    def test_filter_then_escape_restores_listing(self, browser: Browser) -> None:
        full = _names(browser.remote)
        _press(browser, "Down", "Down", "/", "a", "l")

        assert browser.mode is Mode.FILTER
        assert browser.filter_text == "al"
        assert _names(browser.remote) == ["..", "alpha.txt"]
        assert browser.footer_text() == "Filter: al"

        _press(browser, "Escape")

        assert browser.mode is Mode.NORMAL
        assert _names(browser.remote) == full
        assert browser.remote.selected_index == 0
        assert not browser.quit_requested

    def test_hotkeys_are_text_in_filter_mode(self, browser: Browser) -> None:
        _press(browser, "/", "q", "d")
        assert not browser.quit_requested
        assert browser.transfers.is_idle()
        assert browser.filter_text == "qd"

    def test_backspace_edits_filter(self, browser: Browser) -> None:
        _press(browser, "/", "p", "h", "BackSpace")
        assert browser.filter_text == "p"
        assert _names(browser.remote) == ["..", "photos", "projects", "alpha.txt"]
        assert browser.remote.cwd == "/home/user"

    def test_return_navigates_and_leaves_filter(self, browser: Browser) -> None:
        _press(browser, "/", "p", "r", "o", "j", "Down", "Return")
        assert browser.mode is Mode.NORMAL
        assert browser.remote.cwd == "/home/user/projects"
        assert _names(browser.remote) == ["..", "readme.md"]

    def test_return_on_file_restores_listing(self, browser: Browser) -> None:
        full = _names(browser.remote)
        _press(browser, "/", "b", "Down", "Return")
        assert browser.mode is Mode.NORMAL
        assert browser.remote.cwd == "/home/user"
        assert _names(browser.remote) == full

    def test_filter_is_case_insensitive(self, browser: Browser) -> None:
        _press(browser, "/", "B", "E", "T")
        assert _names(browser.remote) == ["..", "beta.log"]


# ---------------------------------------------------------------------------
# Transfers from the keyboard
# ---------------------------------------------------------------------------


class TestTransferKeys:
    def test_download_file_refreshes_local_panel(
        self, browser: Browser, local_dir: Path
    ) -> None:
        _select(browser.remote, "beta.log")
        _press(browser, "d")
        assert browser.message == "Queued download beta.log"

        wait_until(browser.transfers, browser.transfers.is_idle)

        assert (local_dir / "beta.log").read_bytes() == b"bb"
        assert "beta.log" in _names(browser.local)
        assert browser.message == "Downloaded beta.log ✓"

    def test_download_directory_is_folder_job(self, browser: Browser, local_dir: Path) -> None:
        _select(browser.remote, "photos")
        _press(browser, "d")
        wait_until(browser.transfers, browser.transfers.is_idle)
        assert (local_dir / "photos" / "cat.jpg").read_bytes() == b"c" * 10

    def test_download_ignored_on_local_focus_and_parent(self, browser: Browser) -> None:
        _press(browser, "d")  # ".." selected
        _press(browser, "Tab")
        _select(browser.local, "upload.txt")
        _press(browser, "d")
        assert browser.transfers.is_idle()
        assert browser.transfers.state_of(1) is None

    def test_upload_refreshes_remote_panel(
        self, browser: Browser, remote: FakeTransport
    ) -> None:
        _press(browser, "Tab")
        _select(browser.local, "upload.txt")
        _press(browser, "u")
        wait_until(browser.transfers, browser.transfers.is_idle)

        assert remote.files["/home/user/upload.txt"] == b"payload"
        assert "upload.txt" in _names(browser.remote)
        assert browser.message == "Uploaded upload.txt ✓"

    def test_refresh_key(self, browser: Browser, remote: FakeTransport) -> None:
        remote.add_file("/home/user/new.txt", b"")
        _press(browser, "Down")
        _press(browser, "r")
        assert "new.txt" in _names(browser.remote)
        assert browser.remote.selected_index == 1


class TestNormalizeKey:
    @pytest.mark.parametrize(
        ("keysym", "char", "expected"),
        [
            ("Up", "", "Up"),
            ("KP_Enter", "\r", "Return"),
            ("ISO_Left_Tab", "", "Tab"),
            ("slash", "/", "/"),
            ("a", "a", "a"),
            ("Shift_L", "", None),
            ("F5", "", None),
        ],
    )
    def test_mapping(self, keysym: str, char: str, expected) -> None:
        assert normalize_key(keysym, char) == expected

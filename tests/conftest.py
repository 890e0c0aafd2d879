"""Shared fixtures: an in-memory remote host for transfer and browser tests."""

from __future__ import annotations

import posixpath
import shlex
import threading
import time
from pathlib import Path
from typing import Callable

import pytest

from sshpanes.transfer import TransferManager
from sshpanes.transport import CommandResult, Transport, TransportConfig, TransportError


class FakeTransport(Transport):
    """Transport backed by dicts instead of a remote host.

    ``gates`` maps a remote path to a ``threading.Event``: ``get`` of that
    path blocks until the test sets the event, so tests decide the order in
    which downloads finish.
    """

    def __init__(self, home: str = "/home/user") -> None:
        super().__init__(TransportConfig(host="fake.example", username="user"))
        self.home_dir = home
        self.dirs: set[str] = {"/"}
        self.files: dict[str, bytes] = {}
        self.gates: dict[str, threading.Event] = {}
        self.get_failures: dict[str, str] = {}
        self.mkdir_failures: set[str] = set()
        self.unreadable: set[str] = set()
        self.commands: list[str] = []
        self.started: list[str] = []
        self.puts: list[tuple[str, str]] = []
        self.peak_gets = 0
        self._running_gets = 0
        self._lock = threading.RLock()
        self.add_dir(home)

    # -- test setup -----------------------------------------------------

    def add_dir(self, path: str) -> None:
        while path not in self.dirs:
            self.dirs.add(path)
            path = posixpath.dirname(path) or "/"

    def add_file(self, path: str, content: bytes = b"") -> None:
        self.add_dir(posixpath.dirname(path))
        self.files[path] = content

    def gate(self, path: str) -> threading.Event:
        event = self.gates[path] = threading.Event()
        return event

    # -- Transport ------------------------------------------------------

    def _children(self, path: str) -> list[str]:
        prefix = path.rstrip("/") + "/"
        names = []
        for d in self.dirs:
            if d != path and d.startswith(prefix) and "/" not in d[len(prefix):]:
                names.append(d[len(prefix):] + "/")
        for f in self.files:
            if f.startswith(prefix) and "/" not in f[len(prefix):]:
                names.append(f[len(prefix):])
        return names

    def run(self, command: str) -> CommandResult:
        with self._lock:
            self.commands.append(command)
        if command == "cd ~ && pwd":
            return CommandResult(0, self.home_dir + "\n")
        tokens = shlex.split(command)
        if tokens[:2] == ["LC_ALL=C", "ls"]:
            path = tokens[-1]
            if path not in self.dirs or path in self.unreadable:
                return CommandResult(2, "", f"ls: cannot access '{path}': Permission denied")
            with self._lock:
                listing = self._children(path)
            return CommandResult(0, "\n".join(listing) + "\n")
        if tokens[:2] == ["LC_ALL=C", "stat"]:
            path = tokens[5]
            if path not in self.files:
                return CommandResult(1)
            return CommandResult(0, f"{len(self.files[path])}\n")
        if tokens[:2] == ["mkdir", "-p"]:
            path = tokens[-1]
            if path in self.mkdir_failures:
                return CommandResult(1, "", f"mkdir: cannot create directory '{path}'")
            with self._lock:
                self.add_dir(path)
            return CommandResult(0)
        return CommandResult(127, "", f"unknown command: {command}")

    def get(self, remote_path: str, local_path: str | Path) -> None:
        with self._lock:
            self.started.append(remote_path)
            self._running_gets += 1
            self.peak_gets = max(self.peak_gets, self._running_gets)
        try:
            gate = self.gates.get(remote_path)
            if gate is not None and not gate.wait(timeout=10):
                raise TransportError(f"gate for {remote_path} never opened")
            if remote_path in self.get_failures:
                raise TransportError(self.get_failures[remote_path])
            if remote_path not in self.files:
                raise TransportError(f"scp failed: {remote_path}: No such file or directory")
            Path(local_path).write_bytes(self.files[remote_path])
        finally:
            with self._lock:
                self._running_gets -= 1

    def put(self, local_path: str | Path, remote_path: str) -> None:
        parent = posixpath.dirname(remote_path) or "/"
        if parent not in self.dirs:
            raise TransportError(f"scp failed: {parent}: No such file or directory")
        with self._lock:
            self.files[remote_path] = Path(local_path).read_bytes()
            self.puts.append((str(local_path), remote_path))


def wait_until(
    manager: TransferManager,
    predicate: Callable[[], bool],
    timeout: float = 5.0,
) -> None:
    """Tick *manager* like the UI loop until *predicate* holds."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        manager.tick()
        if predicate():
            return
        time.sleep(0.01)
    raise AssertionError("condition not reached before timeout")


@pytest.fixture()
def fake_transport() -> FakeTransport:
    return FakeTransport()

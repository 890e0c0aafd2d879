"""Remote transport backends for SSHPanes.

The browser and the transfer workers only ever see the :class:`Transport`
interface: run a remote command and inspect its exit status and stdout, copy
a file down (``get``), copy a file up (``put``) and create a remote directory
with its parents.  How the bytes actually move is the backend's business:

- :class:`SshCliTransport` shells out to the ``ssh`` and ``scp`` executables.
- :class:`ParamikoTransport` keeps one ``paramiko.SSHClient`` and opens a
  fresh SFTP channel per copy so concurrent workers never share a session.

No call here enforces a timeout: a hung remote command blocks only the
thread that issued it.
"""

from __future__ import annotations

import logging
import socket
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import keyring
import keyring.errors
import paramiko

from sshpanes.utils.path_helpers import shell_escape

logger = logging.getLogger(__name__)

_KEYRING_SERVICE = "SSHPanes"

# Exit status reported when the command could not even be started.
SPAWN_FAILURE_EXIT = 255


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class TransportError(Exception):
    """A get/put/mkdir call failed; the message is shown to the operator."""


class UnknownHostError(Exception):
    """Raised when the remote host key is not in known_hosts.

    Carries the fingerprint and key so the caller can prompt the operator and
    optionally save it via :func:`accept_host_key`.
    """

    def __init__(
        self,
        message: str,
        hostname: str = "",
        key_type: str = "",
        fingerprint: str = "",
        key: paramiko.PKey | None = None,
    ) -> None:
        """Initialise with optional host-key metadata."""
        super().__init__(message)
        self.hostname = hostname
        self.key_type = key_type
        self.fingerprint = fingerprint
        self.key = key


class ConnectionError(Exception):  # noqa: A001  (shadows built-in intentionally)
    """Raised when the paramiko backend cannot reach the host."""


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one remote command."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def describe(self) -> str:
        """Short human-readable failure description."""
        detail = self.stderr.strip().splitlines()
        if detail:
            return f"{detail[-1]} (exit {self.exit_code})"
        return f"exit status {self.exit_code}"


@dataclass(frozen=True)
class TransportConfig:
    """Connection parameters forwarded opaquely to the backend."""

    host: str
    port: int = 22
    username: str = "root"
    identity_file: Optional[str] = None
    auth_type: str = "key"
    ssh_binary: str = "ssh"
    scp_binary: str = "scp"
    batch_mode: bool = True

    @property
    def target(self) -> str:
        """``user@host`` (or just ``host`` when no user is set)."""
        return f"{self.username}@{self.host}" if self.username else self.host

    @property
    def label(self) -> str:
        return f"{self.target}:{self.port}"


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------


class Transport:
    """Command-level access to one remote host.

    Subclasses implement :meth:`run`, :meth:`get` and :meth:`put`; the
    listing, stat, mkdir and home commands are built here so both backends
    send the remote shell exactly the same text.
    """

    def __init__(self, config: TransportConfig) -> None:
        self.config = config

    # -- to be provided by backends -------------------------------------

    def run(self, command: str) -> CommandResult:
        """Run *command* through the remote shell."""
        raise NotImplementedError

    def get(self, remote_path: str, local_path: str | Path) -> None:
        """Copy *remote_path* to *local_path*; raise :class:`TransportError`."""
        raise NotImplementedError

    def put(self, local_path: str | Path, remote_path: str) -> None:
        """Copy *local_path* to *remote_path*; raise :class:`TransportError`."""
        raise NotImplementedError

    def connect(self) -> object:
        """Establish the connection up front, where the backend has one."""
        return None

    def close(self) -> None:
        """Release any held connection."""

    # -- shared remote commands -----------------------------------------

    def list_dir(self, remote_path: str) -> CommandResult:
        """``ls -p -1``: one entry per line, trailing ``/`` on directories."""
        return self.run(f"LC_ALL=C ls -p -1 -- {shell_escape(remote_path)}")

    def stat_size(self, remote_path: str) -> CommandResult:
        """Print the byte size of *remote_path* (GNU ``stat``, then BSD)."""
        p = shell_escape(remote_path)
        return self.run(
            f"LC_ALL=C stat -c %s -- {p} 2>/dev/null || stat -f %z -- {p} 2>/dev/null"
        )

    def mkdir_parents(self, remote_path: str) -> None:
        """Create *remote_path* and any missing parents (idempotent)."""
        result = self.run(f"mkdir -p -- {shell_escape(remote_path)}")
        if not result.ok:
            raise TransportError(
                f"Could not create remote directory {remote_path}: {result.describe()}"
            )

    def home(self) -> CommandResult:
        """Print the remote user's home directory."""
        return self.run("cd ~ && pwd")


# ---------------------------------------------------------------------------
# ssh / scp executables
# ---------------------------------------------------------------------------


class SshCliTransport(Transport):
    """Backend driving the system ``ssh`` and ``scp`` commands."""

    def _common_options(self) -> list[str]:
        opts: list[str] = []
        if self.config.identity_file:
            opts += ["-i", self.config.identity_file]
        if self.config.batch_mode:
            # Never block a worker on an interactive password prompt.
            opts += ["-o", "BatchMode=yes"]
        return opts

    def ssh_command(self, remote_command: str) -> list[str]:
        """argv for running *remote_command* on the host."""
        return [
            self.config.ssh_binary,
            "-p", str(self.config.port),
            *self._common_options(),
            self.config.target,
            remote_command,
        ]

    def scp_command(self, source: str, dest: str) -> list[str]:
        """argv for a quiet scp copy from *source* to *dest*."""
        return [
            self.config.scp_binary,
            # Legacy protocol: the remote path goes through a shell, so the
            # quoting done by _remote_spec is undone on the far side.
            "-O",
            "-q",
            "-P", str(self.config.port),
            *self._common_options(),
            source,
            dest,
        ]

    def _remote_spec(self, remote_path: str) -> str:
        return f"{self.config.target}:{shell_escape(remote_path)}"

    def _execute(self, argv: list[str]) -> CommandResult:
        logger.debug("exec: %s", " ".join(argv))
        try:
            proc = subprocess.run(
                argv,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as exc:
            logger.warning("Could not start %s: %s", argv[0], exc)
            return CommandResult(SPAWN_FAILURE_EXIT, "", str(exc))
        return CommandResult(proc.returncode, proc.stdout, proc.stderr)

    def run(self, command: str) -> CommandResult:
        return self._execute(self.ssh_command(command))

    def get(self, remote_path: str, local_path: str | Path) -> None:
        result = self._execute(self.scp_command(self._remote_spec(remote_path), str(local_path)))
        if not result.ok:
            raise TransportError(f"scp failed: {result.describe()}")

    def put(self, local_path: str | Path, remote_path: str) -> None:
        result = self._execute(self.scp_command(str(local_path), self._remote_spec(remote_path)))
        if not result.ok:
            raise TransportError(f"scp failed: {result.describe()}")


# ---------------------------------------------------------------------------
# paramiko
# ---------------------------------------------------------------------------


class _CapturingPolicy(paramiko.MissingHostKeyPolicy):
    """Raises UnknownHostError with fingerprint info instead of silently rejecting."""

    def missing_host_key(
        self,
        client: paramiko.SSHClient,
        hostname: str,
        key: paramiko.PKey,
    ) -> None:
        """Capture fingerprint and raise :exc:`UnknownHostError`."""
        raw = key.get_fingerprint()
        fingerprint = ":".join(f"{b:02x}" for b in raw)
        raise UnknownHostError(
            f"Host '{hostname}' is not in known_hosts.\n"
            f"Key type: {key.get_name()}\n"
            f"Fingerprint (MD5): {fingerprint}",
            hostname=hostname,
            key_type=key.get_name(),
            fingerprint=fingerprint,
            key=key,
        )


def _close_client_safely(client: paramiko.SSHClient) -> None:
    """Close *client* without raising."""
    try:
        client.close()
    except Exception:
        pass  # Socket already gone


def accept_host_key(hostname: str, key: paramiko.PKey) -> None:
    """Append *key* for *hostname* to ``~/.ssh/known_hosts`` and save."""
    ssh_dir = Path.home() / ".ssh"
    ssh_dir.mkdir(mode=0o700, exist_ok=True)
    known_hosts_path = ssh_dir / "known_hosts"

    host_keys = paramiko.HostKeys(str(known_hosts_path)) if known_hosts_path.exists() else paramiko.HostKeys()
    host_keys.add(hostname, key.get_name(), key)
    host_keys.save(str(known_hosts_path))
    logger.info("Saved host key for %s to known_hosts", hostname)


def keyring_account(config: TransportConfig) -> str:
    """Keyring account key for a host (``user@host``)."""
    return f"{config.username}@{config.host}"


def store_password(config: TransportConfig, password: str) -> None:
    """Store *password* in the OS keyring for this host."""
    keyring.set_password(_KEYRING_SERVICE, keyring_account(config), password)
    logger.debug("Password stored in keyring for %s", keyring_account(config))


def delete_password(config: TransportConfig) -> None:
    """Remove the stored password from the OS keyring."""
    try:
        keyring.delete_password(_KEYRING_SERVICE, keyring_account(config))
    except keyring.errors.PasswordDeleteError:
        pass
    logger.debug("Password deleted from keyring for %s", keyring_account(config))


class ParamikoTransport(Transport):
    """Backend holding one paramiko SSH connection.

    The client is created lazily on first use and shared by every worker;
    each ``get``/``put`` opens its own SFTP channel on the shared transport.
    """

    def __init__(self, config: TransportConfig, connect_timeout: float = 15.0) -> None:
        super().__init__(config)
        self.connect_timeout = connect_timeout
        self._client: paramiko.SSHClient | None = None
        self._lock = threading.Lock()

    def connect(self) -> paramiko.SSHClient:
        """Return the connected client, connecting first if needed.

        Raises:
            UnknownHostError: Host key is not in known_hosts.
            paramiko.AuthenticationException: Wrong credentials.
            ConnectionError: Network-level failure.
        """
        with self._lock:
            if self._client is not None:
                transport = self._client.get_transport()
                if transport is not None and transport.is_active():
                    return self._client
                _close_client_safely(self._client)
                self._client = None
            self._client = self._open_client()
            return self._client

    def _open_client(self) -> paramiko.SSHClient:
        cfg = self.config
        logger.info("Connecting to %s", cfg.label)

        client = paramiko.SSHClient()
        known_hosts_path = Path.home() / ".ssh" / "known_hosts"
        if known_hosts_path.exists():
            client.load_host_keys(str(known_hosts_path))
        client.set_missing_host_key_policy(_CapturingPolicy())

        connect_kwargs: dict = {
            "hostname": cfg.host,
            "port": cfg.port,
            "username": cfg.username,
            "timeout": self.connect_timeout,
            "allow_agent": True,
            "look_for_keys": cfg.auth_type == "key",
        }
        if cfg.auth_type == "password":
            password = keyring.get_password(_KEYRING_SERVICE, keyring_account(cfg))
            if password:
                connect_kwargs["password"] = password
        elif cfg.identity_file:
            connect_kwargs["key_filename"] = str(Path(cfg.identity_file).expanduser())

        try:
            client.connect(**connect_kwargs)
        except UnknownHostError:
            _close_client_safely(client)
            raise
        except paramiko.BadHostKeyException as exc:
            _close_client_safely(client)
            raise UnknownHostError(
                f"Host key mismatch for {cfg.host} — check ~/.ssh/known_hosts",
                hostname=cfg.host,
            ) from exc
        except paramiko.AuthenticationException:
            _close_client_safely(client)
            raise
        except (paramiko.SSHException, socket.timeout, OSError) as exc:
            _close_client_safely(client)
            raise ConnectionError(f"Could not connect to {cfg.label}: {exc}") from exc

        logger.info("Connected to %s", cfg.label)
        return client

    def close(self) -> None:
        with self._lock:
            if self._client is not None:
                _close_client_safely(self._client)
                self._client = None
                logger.info("Disconnected from %s", self.config.label)

    def run(self, command: str) -> CommandResult:
        try:
            client = self.connect()
            logger.debug("exec on %s: %s", self.config.label, command)
            _, stdout, stderr = client.exec_command(command)
            exit_code = stdout.channel.recv_exit_status()
            return CommandResult(
                exit_code,
                stdout.read().decode("utf-8", errors="replace"),
                stderr.read().decode("utf-8", errors="replace"),
            )
        except (paramiko.SSHException, UnknownHostError, ConnectionError, OSError) as exc:
            logger.warning("exec_command(%r) failed: %s", command, exc)
            return CommandResult(SPAWN_FAILURE_EXIT, "", str(exc))

    def _open_sftp(self) -> paramiko.SFTPClient:
        try:
            transport = self.connect().get_transport()
        except (paramiko.SSHException, UnknownHostError, ConnectionError, OSError) as exc:
            raise TransportError(str(exc)) from exc
        if transport is None:
            raise TransportError("SSH transport unavailable")
        sftp = paramiko.SFTPClient.from_transport(transport)
        if sftp is None:
            raise TransportError("Could not open SFTP channel")
        return sftp

    def get(self, remote_path: str, local_path: str | Path) -> None:
        sftp = self._open_sftp()
        try:
            sftp.get(remote_path, str(local_path))
        except (OSError, paramiko.SSHException) as exc:
            raise TransportError(f"SFTP get failed for {remote_path}: {exc}") from exc
        finally:
            sftp.close()

    def put(self, local_path: str | Path, remote_path: str) -> None:
        sftp = self._open_sftp()
        try:
            sftp.put(str(local_path), remote_path)
        except (OSError, paramiko.SSHException) as exc:
            raise TransportError(f"SFTP put failed for {remote_path}: {exc}") from exc
        finally:
            sftp.close()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

BACKENDS = {
    "ssh": SshCliTransport,
    "paramiko": ParamikoTransport,
}


def make_transport(config: TransportConfig, backend: str = "ssh") -> Transport:
    """Build the transport named by *backend* (``"ssh"`` or ``"paramiko"``).

    Password hosts always get the paramiko backend: the ssh executable runs
    in batch mode and would never see the stored password.
    """
    if config.auth_type == "password" and backend == "ssh":
        logger.info("Password auth for %s: using the paramiko transport", config.label)
        backend = "paramiko"
    try:
        cls = BACKENDS[backend]
    except KeyError:
        raise ValueError(f"Unknown transport backend: {backend!r}") from None
    logger.debug("Using %s transport for %s", backend, config.label)
    return cls(config)

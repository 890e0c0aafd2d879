"""SSHPanes — dual-panel file browser for a remote host over SSH."""

__version__ = "0.1.0"

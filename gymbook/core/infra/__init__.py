"""Process infrastructure."""

from .shutdown import ManagedServer, ProcessShell, ShellState, build_server

__all__ = ["ManagedServer", "ProcessShell", "ShellState", "build_server"]

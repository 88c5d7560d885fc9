"""Readiness probes used as poll predicates."""

from __future__ import annotations

import socket

from ..errors import ManagementUnavailable


def tcp_reachable(host: str, port: int, timeout: float = 1.0) -> bool:
    """Connect to host:port and close immediately.

    Raises:
        ManagementUnavailable: If the connection is refused or times out.
    """
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError as e:
        raise ManagementUnavailable(f"Cannot connect to {host}:{port}: {e}") from e


def has_running_marker(output: str, marker: str) -> bool:
    """Check status command output for the running marker.

    A line matches when it starts with the marker, so "Not Running ..." does
    not count as running.
    """
    return any(line.strip().startswith(marker) for line in output.splitlines())

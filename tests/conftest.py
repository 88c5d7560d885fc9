"""Shared test fixtures for fuse-harness tests.

This module provides:
- FakeClock: deterministic clock/sleep pair for readiness polling
- MockJolokia: in-memory management endpoint served through httpx.MockTransport
- container_home: a minimal container installation directory
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx
import pytest

from fuse_harness.config import ContainerSettings, ManagementSettings, OrchestrationConfig
from fuse_harness.container import ReadinessPoller
from fuse_harness.container.configure import DEFAULT_ADMIN_CONFIG

# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Monotonic clock that only advances when slept on."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def time(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def poller(fake_clock: FakeClock) -> ReadinessPoller:
    """Poller with a 1s interval driven by the fake clock."""
    return ReadinessPoller(interval_seconds=1.0, clock=fake_clock.time, sleep=fake_clock.sleep)


# =============================================================================
# Mock management endpoint
# =============================================================================


@dataclass
class MockJolokia:
    """In-memory Jolokia agent with a Karaf bundle table."""

    requests: list[dict[str, Any]] = field(default_factory=list)
    auth_headers: list[str | None] = field(default_factory=list)
    bundles: dict[int, dict[str, Any]] = field(default_factory=dict)
    next_id: int = 7

    # Row overrides applied on install, keyed by artifact file name
    install_states: dict[str, dict[str, Any]] = field(default_factory=dict)
    # Operation signatures that answer with a Jolokia error
    failing_operations: set[str] = field(default_factory=set)
    unreachable: bool = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.unreachable:
            raise httpx.ConnectError("Connection refused", request=request)

        body = json.loads(request.content)
        self.requests.append(body)
        self.auth_headers.append(request.headers.get("authorization"))

        if body["type"] == "version":
            return self._ok({"agent": "1.3.7", "protocol": "7.2"})

        operation = body["operation"]
        if operation in self.failing_operations:
            return httpx.Response(
                200,
                json={
                    "status": 500,
                    "error_type": "javax.management.MBeanException",
                    "error": f"{operation} failed",
                },
            )

        if operation.startswith("install("):
            url = body["arguments"][0]
            unit_id = self.next_id
            self.next_id += 1
            name = Path(url).name
            row = {
                "ID": unit_id,
                "Name": Path(url).stem,
                "Version": "1.0.0",
                "State": "Active",
            }
            row.update(self.install_states.get(name, {}))
            self.bundles[unit_id] = row
            return self._ok(unit_id)

        if operation == "list()":
            return self._ok({str(k): v for k, v in self.bundles.items()})

        return self._ok(None)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def operations(self) -> list[str]:
        return [r["operation"] for r in self.requests if r["type"] == "exec"]

    def installed_urls(self) -> list[str]:
        return [
            r["arguments"][0]
            for r in self.requests
            if r["type"] == "exec" and r["operation"].startswith("install(")
        ]

    @staticmethod
    def _ok(value: Any) -> httpx.Response:
        return httpx.Response(200, json={"status": 200, "value": value})


@pytest.fixture
def jolokia() -> MockJolokia:
    return MockJolokia()


# =============================================================================
# Container installation
# =============================================================================


@pytest.fixture
def container_home(tmp_path: Path) -> Path:
    """Minimal container layout: bin scripts, etc/users.properties."""
    home = tmp_path / "jboss-fuse"
    (home / "bin").mkdir(parents=True)
    (home / "etc").mkdir()
    for script in ("start", "status", "stop"):
        (home / "bin" / script).write_text("#!/bin/sh\nexit 0\n")
    (home / "etc" / "users.properties").write_text(f"{DEFAULT_ADMIN_CONFIG}\n")
    return home


@pytest.fixture
def make_config(container_home: Path):
    """Factory for OrchestrationConfig rooted at container_home."""

    def _make(**kwargs: Any) -> OrchestrationConfig:
        container = kwargs.pop("container", ContainerSettings(home=container_home))
        management = kwargs.pop(
            "management",
            ManagementSettings(url="http://localhost:8181/hawtio/jolokia"),
        )
        kwargs.setdefault("start_timeout", 5.0)
        kwargs.setdefault("management_timeout", 3.0)
        return OrchestrationConfig(container=container, management=management, **kwargs)

    return _make

"""Error taxonomy for fuse-harness.

Every failure the orchestrator can surface to its caller is a HarnessError.
Library errors (httpx, OSError, subprocess) are translated into one of these
at the module boundary where they occur.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .container.poller import PollOutcome
    from .container.verifier import UnitStatusRecord


class HarnessError(Exception):
    """Base error for container orchestration failures."""

    def __init__(self, message: str, stage: str | None = None):
        self.message = message
        self.stage = stage
        super().__init__(message)

    def __str__(self) -> str:
        if self.stage:
            return f"[{self.stage}] {self.message}"
        return self.message


class ProcessLaunchError(HarnessError):
    """A container command could not be spawned."""

    def __init__(self, message: str, command: list[str] | None = None):
        super().__init__(message)
        self.command = command or []


class ReadinessTimeout(HarnessError):
    """A readiness poll ran out of time."""

    def __init__(self, what: str, message: str, outcome: PollOutcome | None = None):
        super().__init__(message)
        self.what = what
        self.outcome = outcome


class ConfigurationError(HarnessError):
    """Invalid configuration or a failed file-configuration operation."""


class ManagementUnavailable(HarnessError):
    """Management endpoint not reachable (transient while polling)."""


class InstallError(HarnessError):
    """Artifact install failed on transport or protocol level."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class UnitNotFound(HarnessError):
    """The management endpoint does not know the unit id."""

    def __init__(self, unit_id: int):
        super().__init__(f"Unit {unit_id} not found on management endpoint")
        self.unit_id = unit_id


class OperationError(HarnessError):
    """A named management operation failed."""

    def __init__(self, message: str, operation: str, arguments: tuple[Any, ...] = ()):
        super().__init__(message)
        self.operation = operation
        self.arguments = arguments


class VerificationKind(Enum):
    """Why a unit failed verification."""

    BAD_CORE_STATE = "bad_core_state"
    BAD_SUBSYSTEM_STATE = "bad_subsystem_state"


class VerificationError(HarnessError):
    """An installed unit is not in an accepted runtime state."""

    def __init__(
        self,
        kind: VerificationKind,
        record: UnitStatusRecord,
        state: str | None,
        subsystem: str | None = None,
    ):
        label = "bundle" if subsystem is None else subsystem
        message = (
            f"Invalid {label} state {state} "
            f"[{record.id} {record.name} {record.version}]"
        )
        super().__init__(message)
        self.kind = kind
        self.record = record
        self.state = state
        self.subsystem = subsystem

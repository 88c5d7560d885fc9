"""Deployment verification.

An installed unit counts as deployed when its core state is ACTIVE and every
sub-framework state it reports is either blank or CREATED.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ..errors import VerificationError, VerificationKind
from ..shared.logging import get_logger

logger = get_logger(__name__)

ACTIVE = "ACTIVE"
CREATED = "CREATED"

# Sub-framework name -> column in the management endpoint's unit table
SUBSYSTEM_FIELDS: dict[str, str] = {
    "blueprint": "Blueprint",
    "spring": "Spring",
}


@dataclass(frozen=True)
class UnitStatusRecord:
    """Snapshot of one installed unit.

    `subsystem_states` only holds the sub-frameworks the unit reports; a
    missing key means the unit does not use that sub-framework.
    """

    id: int
    name: str = ""
    version: str = ""
    core_state: str | None = None
    subsystem_states: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_row(
        cls,
        row: Mapping[str, Any],
        subsystems: Mapping[str, str] = SUBSYSTEM_FIELDS,
    ) -> UnitStatusRecord:
        """Build a record from a unit table row.

        Args:
            row: Row with ID, Name, Version, State and optional sub-framework columns.
            subsystems: Declared sub-framework names and their columns.
        """
        states = {}
        for name, column in subsystems.items():
            if column in row:
                value = row[column]
                states[name] = "" if value is None else str(value)
        state = row.get("State")
        return cls(
            id=int(row["ID"]),
            name=str(row.get("Name", "")),
            version=str(row.get("Version", "")),
            core_state=None if state is None else str(state),
            subsystem_states=states,
        )

    def describe(self) -> str:
        parts = [str(self.id), self.name, self.version, str(self.core_state)]
        parts.extend(f"{k}={v}" for k, v in self.subsystem_states.items())
        return " ".join(parts)


class DeploymentVerifier:
    """Check status records against the accepted state tokens."""

    def __init__(self, active_state: str = ACTIVE, created_state: str = CREATED):
        self.active_state = active_state.upper()
        self.created_state = created_state.upper()

    def verify(self, record: UnitStatusRecord) -> None:
        """Validate a record. Pure; performs no I/O.

        Raises:
            VerificationError: BAD_CORE_STATE when the unit is not active,
                BAD_SUBSYSTEM_STATE when a reported sub-framework state is
                neither blank nor created.
        """
        logger.info("unit_status", unit=record.describe())

        if record.core_state is None or record.core_state.upper() != self.active_state:
            raise VerificationError(VerificationKind.BAD_CORE_STATE, record, record.core_state)

        for subsystem, state in record.subsystem_states.items():
            if not state.strip():
                continue
            if state.upper() != self.created_state:
                raise VerificationError(
                    VerificationKind.BAD_SUBSYSTEM_STATE, record, state, subsystem=subsystem
                )

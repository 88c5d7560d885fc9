"""Container lifecycle package.

This package starts a Karaf-based container, waits for it to come up,
configures it, deploys bundles into it and verifies they reached the
expected runtime state. On any failure the container is shut down.
"""

from .configure import ConfigOperation, ConfigOption, apply_operation, apply_operations
from .deployment import (
    DeploymentUnit,
    collect_units,
    discover_artifacts,
    has_scheme,
    unit_from_location,
)
from .management import ManagementClient, ManagementSession
from .orchestrator import (
    DeployedUnit,
    LifecycleOrchestrator,
    OrchestrationResult,
    OrchestratorState,
)
from .poller import PollOutcome, ReadinessPoller
from .probes import has_running_marker, tcp_reachable
from .process import ProcessController, ProcessHandle
from .verifier import DeploymentVerifier, UnitStatusRecord

__all__ = [
    # Process control
    "ProcessController",
    "ProcessHandle",
    # Polling
    "ReadinessPoller",
    "PollOutcome",
    "tcp_reachable",
    "has_running_marker",
    # Management endpoint
    "ManagementClient",
    "ManagementSession",
    # Verification
    "DeploymentVerifier",
    "UnitStatusRecord",
    # Configuration and deployment sources
    "ConfigOperation",
    "ConfigOption",
    "apply_operation",
    "apply_operations",
    "DeploymentUnit",
    "collect_units",
    "discover_artifacts",
    "has_scheme",
    "unit_from_location",
    # Orchestration
    "LifecycleOrchestrator",
    "OrchestrationResult",
    "OrchestratorState",
    "DeployedUnit",
]

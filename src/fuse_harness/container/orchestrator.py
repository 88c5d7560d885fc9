"""Container lifecycle orchestration.

Drives one run through:

    IDLE -> PREPARING -> PROCESS_STARTING -> AWAITING_PROCESS_READY
         -> AWAITING_MANAGEMENT_READY -> CONFIGURING -> INSTALLING_FEATURES
         -> DEPLOYING(i) -> VERIFYING(i) -> ... -> COMPLETE

Any error in any state goes FAILING -> SHUTDOWN_INVOKED -> FAILED: the
container is shut down exactly once and the original error is re-raised.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from ..errors import HarnessError, ReadinessTimeout
from ..shared.logging import get_logger
from .configure import apply_operations, enable_admin_user, make_scripts_executable
from .deployment import DeploymentUnit, collect_units
from .management import ManagementClient
from .poller import PollOutcome, ReadinessPoller
from .probes import has_running_marker, tcp_reachable
from .process import ProcessController, ProcessHandle
from .verifier import DeploymentVerifier, UnitStatusRecord

if TYPE_CHECKING:
    from ..config import OrchestrationConfig

logger = get_logger(__name__)


class OrchestratorState(Enum):
    """States of one orchestration run."""

    IDLE = "idle"
    PREPARING = "preparing"
    PROCESS_STARTING = "process_starting"
    AWAITING_PROCESS_READY = "awaiting_process_ready"
    AWAITING_MANAGEMENT_READY = "awaiting_management_ready"
    CONFIGURING = "configuring"
    INSTALLING_FEATURES = "installing_features"
    DEPLOYING = "deploying"
    VERIFYING = "verifying"
    COMPLETE = "complete"
    FAILING = "failing"
    SHUTDOWN_INVOKED = "shutdown_invoked"
    FAILED = "failed"


@dataclass
class DeployedUnit:
    """A unit that was installed (and verified, if required)."""

    unit: DeploymentUnit
    unit_id: int
    record: UnitStatusRecord | None = None


@dataclass
class OrchestrationResult:
    """Outcome of a completed run."""

    state: OrchestratorState
    handle: ProcessHandle | None = None
    deployed: list[DeployedUnit] = field(default_factory=list)
    elapsed_seconds: float = 0.0


class LifecycleOrchestrator:
    """Start the container, wait for it, configure it, deploy and verify.

    One instance handles exactly one run.
    """

    def __init__(
        self,
        config: OrchestrationConfig,
        process: ProcessController | None = None,
        management: ManagementClient | None = None,
        verifier: DeploymentVerifier | None = None,
        poller: ReadinessPoller | None = None,
        probe: Callable[[str, int], bool] = tcp_reachable,
    ):
        """Initialize orchestrator.

        Args:
            config: Merged configuration for the run.
            process: Process controller (built from config if omitted).
            management: Management client (built from config if omitted).
            verifier: Deployment verifier (default accepted states if omitted).
            poller: Readiness poller (config poll interval if omitted).
            probe: TCP reachability probe (host, port) -> bool.
        """
        self.config = config
        self.process = process or ProcessController(config.container)
        self.management = management or ManagementClient.from_settings(config.management)
        self.verifier = verifier or DeploymentVerifier()
        self.poller = poller or ReadinessPoller(interval_seconds=config.poll_interval)
        self.probe = probe

        self._state = OrchestratorState.IDLE
        self.history: list[OrchestratorState] = [OrchestratorState.IDLE]
        self.unit_index: int | None = None
        self.failed_state: OrchestratorState | None = None
        self.error: BaseException | None = None
        self.handle: ProcessHandle | None = None
        self.deployed: list[DeployedUnit] = []
        self._last_status = ""

    @property
    def state(self) -> OrchestratorState:
        return self._state

    def run(self) -> OrchestrationResult:
        """Execute the whole run.

        Returns:
            OrchestrationResult in the COMPLETE state.

        Raises:
            HarnessError: The error that failed the run, after shutdown.
            RuntimeError: If this orchestrator has already run.
        """
        if self._state is not OrchestratorState.IDLE:
            raise RuntimeError(f"Orchestrator already used (state: {self._state.value})")

        start = time.monotonic()
        try:
            self._prepare()
            self._start_process()
            self._await_process_ready()
            self._await_management_ready()
            self._configure()
            self._install_features()
            self._deploy_all()
        except BaseException as e:
            # KeyboardInterrupt must not orphan the container either
            self._fail(e)
            raise

        self._transition(OrchestratorState.COMPLETE)
        elapsed = time.monotonic() - start
        logger.info("orchestration_complete", units=len(self.deployed), elapsed_seconds=elapsed)
        return OrchestrationResult(
            state=self._state,
            handle=self.handle,
            deployed=list(self.deployed),
            elapsed_seconds=elapsed,
        )

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def _prepare(self) -> None:
        self._transition(OrchestratorState.PREPARING)
        home = self.config.container.home
        make_scripts_executable(home)
        if self.config.container.enable_admin_user:
            enable_admin_user(home)

    def _start_process(self) -> None:
        self._transition(OrchestratorState.PROCESS_STARTING)
        self.handle = self.process.start()

    def _await_process_ready(self) -> None:
        self._transition(OrchestratorState.AWAITING_PROCESS_READY)
        marker = self.config.container.running_marker
        timeout = self.config.start_timeout

        def process_ready() -> bool:
            output = self.process.status()
            self._last_status = output.strip()
            return has_running_marker(output, marker)

        outcome = self.poller.poll_until(process_ready, timeout)
        if not outcome.success:
            last = self._last_status or outcome.describe_last()
            raise ReadinessTimeout(
                "process",
                f"Container did not report '{marker}' within {timeout}s "
                f"({outcome.attempts} attempts). Last status: {last}",
                outcome,
            )
        logger.info(
            "process_ready", attempts=outcome.attempts, elapsed_seconds=outcome.elapsed_seconds
        )

    def _await_management_ready(self) -> None:
        self._transition(OrchestratorState.AWAITING_MANAGEMENT_READY)
        settings = self.config.management
        timeout = self.config.management_timeout

        def management_ready() -> bool:
            if not self.probe(settings.host, settings.port):
                return False
            if settings.handshake:
                self.management.ping()
            return True

        outcome = self.poller.poll_until(management_ready, timeout)
        if not outcome.success:
            raise ReadinessTimeout(
                "management",
                f"Management endpoint {settings.host}:{settings.port} not ready within "
                f"{timeout}s. Last error: {outcome.describe_last()}",
                outcome,
            )
        logger.info("management_ready", attempts=outcome.attempts)

        for name, port in self.config.readiness_checks:
            outcome = self._poll_port(settings.host, port, timeout)
            if not outcome.success:
                raise ReadinessTimeout(
                    name,
                    f"Readiness check '{name}' ({settings.host}:{port}) failed within "
                    f"{timeout}s. Last error: {outcome.describe_last()}",
                    outcome,
                )
            logger.info("readiness_check_passed", check=name, port=port)

    def _poll_port(self, host: str, port: int, timeout: float) -> PollOutcome:
        return self.poller.poll_until(lambda: self.probe(host, port), timeout)

    def _configure(self) -> None:
        self._transition(OrchestratorState.CONFIGURING)
        apply_operations(self.config.file_operations, self.config.container.home)

    def _install_features(self) -> None:
        self._transition(OrchestratorState.INSTALLING_FEATURES)
        for repository in self.config.feature_repositories:
            logger.info("feature_repository_add", repository=repository)
            self.management.add_feature_repository(repository)
        for feature in self.config.features:
            logger.info("feature_install", feature=feature)
            self.management.install_feature(feature)

    def _deploy_all(self) -> None:
        self._transition(OrchestratorState.DEPLOYING)
        units = collect_units(self.config.deploy_directories, self.config.units)
        logger.info("deployment_started", units=len(units))

        for index, unit in enumerate(units):
            self.unit_index = index
            if self._state is not OrchestratorState.DEPLOYING:
                self._transition(OrchestratorState.DEPLOYING)
            unit_id = self.management.install(unit.location)
            deployed = DeployedUnit(unit=unit, unit_id=unit_id)

            if unit.require_verification and self.config.verify_units:
                self._transition(OrchestratorState.VERIFYING)
                deployed.record = self.management.status(unit_id)
                self.verifier.verify(deployed.record)
            self.deployed.append(deployed)

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def _transition(self, new_state: OrchestratorState) -> None:
        logger.info(
            "state_transition",
            from_state=self._state.value,
            to_state=new_state.value,
            unit_index=self.unit_index,
        )
        self._state = new_state
        self.history.append(new_state)

    def _fail(self, error: BaseException) -> None:
        """Shut the container down once and record the error."""
        self.failed_state = self._state
        self.error = error
        if isinstance(error, HarnessError) and error.stage is None:
            error.stage = self.failed_state.value
        logger.error(
            "orchestration_failed",
            stage=self.failed_state.value,
            unit_index=self.unit_index,
            error=str(error),
        )

        self._transition(OrchestratorState.FAILING)
        self._transition(OrchestratorState.SHUTDOWN_INVOKED)
        try:
            self.process.shutdown()
        except Exception as e:
            logger.error("shutdown_failed", error=str(e), exc_info=True)
        self._transition(OrchestratorState.FAILED)

"""Container process control.

Starts the container through its start script, queries the status script,
and stops it through the stop script. Retry policy is not handled here; see
ReadinessPoller.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..errors import ProcessLaunchError
from ..shared.logging import get_logger

if TYPE_CHECKING:
    from ..config import ContainerSettings

logger = get_logger(__name__)

STATUS_TIMEOUT = 30.0
TERMINATE_TIMEOUT = 5.0


@dataclass
class ProcessHandle:
    """The launched start command."""

    command: list[str]
    process: subprocess.Popen

    @property
    def pid(self) -> int:
        return self.process.pid

    def alive(self) -> bool:
        return self.process.poll() is None


class ProcessController:
    """Start, query and stop the container process."""

    def __init__(self, settings: ContainerSettings):
        """Initialize controller.

        Args:
            settings: Container home and the start/status/stop commands.
        """
        self.settings = settings
        self._handle: ProcessHandle | None = None

    @property
    def handle(self) -> ProcessHandle | None:
        return self._handle

    def start(self) -> ProcessHandle:
        """Launch the start command detached from this process group.

        Raises:
            ProcessLaunchError: If the command cannot be spawned.
        """
        command = self.settings.resolve(self.settings.start_command)
        logger.info("container_starting", command=command, home=str(self.settings.home))
        try:
            process = subprocess.Popen(
                command,
                cwd=self.settings.home,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            raise ProcessLaunchError(f"Cannot launch {command[0]}: {e}", command) from e

        self._handle = ProcessHandle(command=command, process=process)
        logger.info("container_launched", pid=process.pid)
        return self._handle

    def status(self) -> str:
        """Run the status command and return its standard output.

        A container that is not up yet is not an error; the output simply
        lacks the running marker.

        Raises:
            ProcessLaunchError: If the command cannot be spawned.
        """
        command = self.settings.resolve(self.settings.status_command)
        try:
            result = subprocess.run(
                command,
                cwd=self.settings.home,
                capture_output=True,
                text=True,
                timeout=STATUS_TIMEOUT,
            )
        except subprocess.TimeoutExpired:
            logger.debug("status_timeout", command=command)
            return ""
        except OSError as e:
            raise ProcessLaunchError(f"Cannot run {command[0]}: {e}", command) from e
        return result.stdout

    def stop(self) -> tuple[bool, str]:
        """Run the stop command unconditionally.

        Returns:
            Tuple of (success, message).

        Raises:
            ProcessLaunchError: If the command cannot be spawned.
        """
        command = self.settings.resolve(self.settings.stop_command)
        logger.info("container_stopping", command=command)
        try:
            result = subprocess.run(
                command,
                cwd=self.settings.home,
                capture_output=True,
                text=True,
                timeout=self.settings.stop_timeout,
            )
        except subprocess.TimeoutExpired:
            return False, f"Stop command timed out after {self.settings.stop_timeout}s"
        except OSError as e:
            raise ProcessLaunchError(f"Cannot run {command[0]}: {e}", command) from e

        if result.returncode != 0:
            return False, f"Stop command failed: {result.stderr.strip() or result.returncode}"
        return True, "Container stopped"

    def shutdown(self) -> None:
        """Best-effort stop of a container started by this controller.

        Never raises. A no-op when nothing was started or when already shut
        down.
        """
        handle = self._handle
        if handle is None:
            logger.debug("shutdown_skipped", reason="no process started")
            return
        self._handle = None

        try:
            success, message = self.stop()
            if not success:
                logger.warning("shutdown_stop_failed", message=message)
        except Exception as e:
            logger.error("shutdown_stop_error", error=str(e), exc_info=True)

        try:
            self._reap(handle)
        except Exception as e:
            logger.error("shutdown_reap_error", pid=handle.pid, error=str(e), exc_info=True)

        logger.info("container_shutdown_complete", pid=handle.pid)

    def _reap(self, handle: ProcessHandle) -> None:
        """Terminate the start command if it is still around, then kill."""
        if not handle.alive():
            return
        handle.process.terminate()
        try:
            handle.process.wait(timeout=TERMINATE_TIMEOUT)
        except subprocess.TimeoutExpired:
            logger.warning("start_command_killed", pid=handle.pid)
            handle.process.kill()
            handle.process.wait(timeout=TERMINATE_TIMEOUT)

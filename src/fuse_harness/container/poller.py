"""Bounded readiness polling.

Repeatedly evaluates a predicate until it returns True or a wall-clock
deadline passes. Predicate errors count as "not ready yet"; the last one is
kept on the outcome for diagnostics.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ..shared.logging import get_logger

logger = get_logger(__name__)


@dataclass
class PollOutcome:
    """Result of a bounded poll."""

    success: bool
    attempts: int = 0
    elapsed_seconds: float = 0.0
    last_value: Any = None
    last_error: BaseException | None = None

    @property
    def timed_out(self) -> bool:
        return not self.success

    def describe_last(self) -> str:
        """Short description of the last observation, for error messages."""
        if self.last_error is not None:
            return f"{type(self.last_error).__name__}: {self.last_error}"
        if self.last_value is not None:
            return repr(self.last_value)
        return "none"


class ReadinessPoller:
    """Poll a predicate against a wall-clock deadline."""

    def __init__(
        self,
        interval_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize poller.

        Args:
            interval_seconds: Default delay between attempts.
            clock: Monotonic clock, injectable for tests.
            sleep: Sleep function, injectable for tests.
        """
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._sleep = sleep

    def poll_until(
        self,
        predicate: Callable[[], Any],
        timeout: float,
        interval: float | None = None,
    ) -> PollOutcome:
        """Evaluate predicate until truthy or the deadline passes.

        The deadline is measured from loop entry, so a slow attempt consumes
        budget. With a zero or negative timeout exactly one attempt is made.
        The most recent predicate error is kept until an attempt succeeds.

        Args:
            predicate: Callable returning a truthy value when ready. It may
                raise; the error is recorded and polling continues.
            timeout: Seconds allowed in total.
            interval: Seconds between attempts (defaults to the poller's).

        Returns:
            PollOutcome with success flag and last observation.
        """
        if interval is None:
            interval = self.interval_seconds
        start = self._clock()
        attempts = 0
        last_value: Any = None
        last_error: BaseException | None = None

        while True:
            attempts += 1
            ready = False
            try:
                last_value = predicate()
                ready = bool(last_value)
            except Exception as e:
                last_value = None
                last_error = e

            logger.debug(
                "poll_attempt",
                attempt=attempts,
                ready=ready,
                error=str(last_error) if last_error else None,
            )

            if ready:
                return PollOutcome(
                    success=True,
                    attempts=attempts,
                    elapsed_seconds=self._clock() - start,
                    last_value=last_value,
                )

            if timeout <= 0:
                break

            self._sleep(interval)
            if self._clock() - start >= timeout:
                break

        return PollOutcome(
            success=False,
            attempts=attempts,
            elapsed_seconds=self._clock() - start,
            last_value=last_value,
            last_error=last_error,
        )

"""State poller for asynchronous Azure transitions.

Azure exposes no push notification for power-state changes, so nicswap
samples the resource on a fixed interval until it matches or a bounded
number of attempts is used up. A timeout is an outcome, not an exception:
callers decide whether it is fatal.
"""

import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

from nicswap.control_plane import AzureControlPlane
from nicswap.results import AzResult

logger = logging.getLogger(__name__)

DEFAULT_CHECK_INTERVAL_SECONDS = 10
DEFAULT_MAX_WAIT_MINUTES = 10
PROGRESS_INTERVAL_SECONDS = 60


class PollOutcome(Enum):
    """Result of waiting for a state."""

    REACHED = "reached"
    TIMED_OUT = "timed_out"

    @property
    def reached(self) -> bool:
        """True if the target state was observed."""
        return self is PollOutcome.REACHED


class StatePoller:
    """Sample a resource until a predicate holds or the wait budget runs out."""

    def __init__(
        self,
        control_plane: AzureControlPlane,
        check_interval_seconds: int = DEFAULT_CHECK_INTERVAL_SECONDS,
        max_wait_minutes: float = DEFAULT_MAX_WAIT_MINUTES,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize poller.

        Args:
            control_plane: Client used by wait_for_power_state
            check_interval_seconds: Seconds between samples
            max_wait_minutes: Total wait budget in minutes
            sleep: Sleep function (injectable for tests)

        Raises:
            ValueError: If the interval or wait budget is not positive
        """
        if check_interval_seconds <= 0:
            raise ValueError("check_interval_seconds must be positive")
        if max_wait_minutes <= 0:
            raise ValueError("max_wait_minutes must be positive")
        self.control_plane = control_plane
        self.check_interval_seconds = check_interval_seconds
        self.max_wait_minutes = max_wait_minutes
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        """Number of samples taken before giving up."""
        return max(1, int(self.max_wait_minutes * 60 // self.check_interval_seconds))

    def await_state(
        self,
        observe: Callable[[], AzResult[Any]],
        predicate: Callable[[Any], bool],
        description: str,
    ) -> PollOutcome:
        """Poll until predicate(observe().value) is true.

        A failed observation counts as "not reached yet". Progress is logged
        roughly once per minute.

        Args:
            observe: Zero-argument callable returning the current observation
            predicate: Test applied to a successful observation
            description: What is being waited for (used in logs)

        Returns:
            PollOutcome.REACHED or PollOutcome.TIMED_OUT
        """
        logger.info(f"Waiting for {description}")
        progress_every = max(1, PROGRESS_INTERVAL_SECONDS // self.check_interval_seconds)
        last_seen: Any = None

        for attempt in range(1, self.max_attempts + 1):
            result = observe()
            if result.ok:
                last_seen = result.value
                if predicate(result.value):
                    logger.info(f"Reached {description}: {result.value}")
                    return PollOutcome.REACHED

            self._sleep(self.check_interval_seconds)

            if attempt % progress_every == 0:
                elapsed_minutes = attempt * self.check_interval_seconds / 60
                logger.info(
                    f"Still waiting... Current state: {last_seen} "
                    f"({elapsed_minutes:.0f} minutes elapsed)"
                )

        logger.warning(f"Timeout waiting for {description}")
        return PollOutcome.TIMED_OUT

    def wait_for_power_state(self, vm_name: str, resource_group: str, target: str) -> PollOutcome:
        """Wait until the VM's power state code contains target ("deallocated", "running").

        Args:
            vm_name: VM name
            resource_group: Resource group name
            target: Substring of the PowerState/* code to wait for

        Returns:
            PollOutcome
        """
        return self.await_state(
            observe=lambda: self.control_plane.get_power_state(vm_name, resource_group),
            predicate=lambda state: target.lower() in str(state).lower(),
            description=f"VM '{vm_name}' to reach state: {target}",
        )


__all__ = [
    "DEFAULT_CHECK_INTERVAL_SECONDS",
    "DEFAULT_MAX_WAIT_MINUTES",
    "PollOutcome",
    "StatePoller",
]

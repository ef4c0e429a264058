"""Bounded wait for asynchronous EBS state transitions.

Most EBS operations return before the volume reaches its new state, so
the driver polls DescribeVolumes until a condition holds. The retry
policy lives here; conditions only judge a single snapshot.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from blocker.config import PollConfig
from blocker.driver.models import AttachmentState, Volume, VolumeState
from blocker.driver.registry import VolumeRegistry
from blocker.errors import StateTransitionTimeoutError
from blocker.logging_schema import LogEvent
from blocker.metrics import BLOCKER_POLL_ATTEMPTS

logger = logging.getLogger(__name__)


class Condition:
    """Named predicate over a volume snapshot.

    check returns None when satisfied, otherwise a description of why
    not. The description of the last failed check becomes the timeout
    error message.
    """

    def __init__(self, label: str, check: Callable[[Volume], str | None]) -> None:
        self.label = label
        self.check = check

    def __call__(self, volume: Volume) -> str | None:
        return self.check(volume)


def _attached(volume: Volume) -> str | None:
    attachment = volume.attachment
    if attachment is None:
        return (
            "Volume state transition failed: expected 1 attachment, "
            f"got {len(volume.attachments)}"
        )
    if attachment.state != AttachmentState.ATTACHED:
        return (
            f"Volume state transition failed: seeking {AttachmentState.ATTACHED.value}, "
            f"current is {attachment.state.value}"
        )
    return None


def _detached(volume: Volume) -> str | None:
    if volume.attachments:
        return "Volume state transition failed: still has attachments"
    return None


def _available(volume: Volume) -> str | None:
    if volume.state != VolumeState.AVAILABLE:
        return (
            f"Volume state transition failed: seeking {VolumeState.AVAILABLE.value}, "
            f"current is {volume.state.value}"
        )
    return None


ATTACHED = Condition("attached", _attached)
DETACHED = Condition("detached", _detached)
AVAILABLE = Condition("available", _available)


class StatePoller:
    """Re-fetch a volume until a condition holds or the budget runs out."""

    def __init__(self, registry: VolumeRegistry, config: PollConfig) -> None:
        self._registry = registry
        self._max_attempts = config.max_attempts
        self._interval = config.interval

    async def wait_until(self, name: str, condition: Condition) -> Volume:
        """Wait until condition holds for the named volume.

        Returns:
            The snapshot that satisfied the condition.

        Raises:
            VolumeNotFoundError: The volume disappeared. Not retried.
            StateTransitionTimeoutError: Still unsatisfied after the last
                attempt; carries the condition's last failure reason.
        """
        attempt = 0
        while True:
            attempt += 1
            volume = await self._registry.find_by_name(name)
            BLOCKER_POLL_ATTEMPTS.labels(condition=condition.label).inc()

            reason = condition(volume)
            if reason is None:
                return volume
            if attempt >= self._max_attempts:
                raise StateTransitionTimeoutError(reason)

            logger.info(
                "Waiting for EBS volume to become %s",
                condition.label,
                extra={
                    "event": LogEvent.STATE_WAITING,
                    "volume": name,
                    "attempt": attempt,
                    "reason": reason,
                },
            )
            await asyncio.sleep(self._interval)

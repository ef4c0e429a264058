"""Device slot allocation and EBS attach/detach."""

from __future__ import annotations

import asyncio
import logging

from blocker.config import MountConfig
from blocker.driver.models import AttachmentState, Volume
from blocker.driver.naming import DeviceSlot
from blocker.driver.poller import ATTACHED, AVAILABLE, DETACHED, StatePoller
from blocker.driver.registry import VolumeRegistry
from blocker.errors import (
    DeviceExhaustedError,
    DeviceMissingAfterAttachError,
    ProviderAPIError,
)
from blocker.infra import Ec2Operations
from blocker.logging_schema import LogEvent

logger = logging.getLogger(__name__)


class DeviceAllocator:
    """Attaches volumes to free /dev/sd[f-p] slots on this instance.

    A slot counts as taken when either local alias exists or EC2 reports
    an attachment on that device name for this instance. Scanning for a
    slot, requesting the attach and waiting for it to settle happen under
    one lock, so concurrent attaches never pick the same slot.
    """

    def __init__(
        self,
        ec2: Ec2Operations,
        registry: VolumeRegistry,
        poller: StatePoller,
        instance_id: str,
        config: MountConfig,
    ) -> None:
        self._ec2 = ec2
        self._registry = registry
        self._poller = poller
        self._instance_id = instance_id
        self._dev_root = config.dev_root
        self._slot_lock = asyncio.Lock()

    async def attach(self, volume: Volume) -> str:
        """Attach volume to this instance and return the local device path.

        Idempotent: a volume already attached here returns its existing
        device without another AttachVolume call.

        Raises:
            DeviceExhaustedError: Every slot is taken.
            DeviceMissingAfterAttachError: EC2 reports attached but no
                local device appeared (the volume is detached again).
            StateTransitionTimeoutError: The volume never became available
                or never finished attaching.
        """
        attachment = volume.attachment
        if (
            attachment is not None
            and attachment.instance_id == self._instance_id
            and attachment.state == AttachmentState.ATTACHED
        ):
            slot = DeviceSlot.from_device(attachment.device, self._dev_root)
            device = slot.local_device() if slot else None
            if device is None:
                raise DeviceMissingAfterAttachError(attachment.device)
            return device

        # A volume still detaching from a previous owner rejects attach
        await self._poller.wait_until(volume.name, AVAILABLE)

        async with self._slot_lock:
            slot = await self._claim_slot(volume)

        logger.info(
            "Attached EBS volume",
            extra={
                "event": LogEvent.VOLUME_ATTACHED,
                "volume": volume.name,
                "instance_id": self._instance_id,
                "device": slot.request_device,
            },
        )

        device = slot.local_device()
        if device is None:
            await self.detach_quietly(volume)
            raise DeviceMissingAfterAttachError(slot.request_device)

        if device != slot.aliases[0]:
            logger.info(
                "Local device name differs from requested",
                extra={"event": LogEvent.DEVICE_ALIAS_RESOLVED, "volume": volume.name, "device": device},
            )
        return device

    async def _claim_slot(self, volume: Volume) -> DeviceSlot:
        attached = await self._registry.devices_attached_to(self._instance_id)
        taken = {
            slot.letter
            for slot in (DeviceSlot.from_device(d) for d in attached)
            if slot is not None
        }

        for slot in DeviceSlot.all(self._dev_root):
            if slot.letter in taken or slot.occupied_locally():
                continue

            try:
                await self._ec2.attach_volume(
                    volume.volume_id, self._instance_id, slot.request_device
                )
            except ProviderAPIError as e:
                if not e.device_in_use:
                    raise
                # Local view and EC2 view disagree; EC2 wins
                logger.info(
                    "Device already in use according to EC2",
                    extra={"event": LogEvent.SLOT_TAKEN, "volume": volume.name, "device": slot.request_device},
                )
                continue

            await self._poller.wait_until(volume.name, ATTACHED)
            return slot

        raise DeviceExhaustedError()

    async def detach(self, volume: Volume) -> None:
        """Detach volume from this instance and wait until it has no attachments."""
        current = await self._registry.find_by_name(volume.name)
        if not current.attachments:
            logger.debug("Volume has no attachment", extra={"volume": volume.name})
            return

        await self._ec2.detach_volume(current.volume_id, self._instance_id)
        await self._poller.wait_until(volume.name, DETACHED)

        logger.info(
            "Detached EBS volume",
            extra={"event": LogEvent.VOLUME_DETACHED, "volume": volume.name, "instance_id": self._instance_id},
        )

    async def detach_quietly(self, volume: Volume) -> None:
        """Best-effort detach used to undo a failed step.

        Errors are logged and dropped so the caller can report the
        failure that triggered the cleanup.
        """
        try:
            await self.detach(volume)
        except Exception as e:
            logger.warning(
                "Compensating detach failed",
                extra={"event": LogEvent.COMPENSATION_FAILED, "volume": volume.name, "error": str(e)},
            )

"""Lookup of EBS volumes by Name tag."""

from __future__ import annotations

import logging

from blocker.driver.models import NAME_TAG, Volume
from blocker.errors import VolumeNotFoundError
from blocker.infra import Ec2Operations
from blocker.logging_schema import LogEvent

logger = logging.getLogger(__name__)


class VolumeRegistry:
    """Read-only view of the volumes this plugin manages.

    Identity is the Name tag written at creation time. Nothing is
    cached: every call goes to EC2.
    """

    def __init__(self, ec2: Ec2Operations) -> None:
        self._ec2 = ec2

    async def find_by_name(self, name: str) -> Volume:
        """Return the volume tagged Name=name.

        When several volumes carry the same tag the first one EC2 returns
        is used and the ambiguity is logged.

        Raises:
            VolumeNotFoundError: No volume carries the tag.
        """
        data = await self._ec2.describe_volumes({f"tag:{NAME_TAG}": [name]})
        if not data:
            raise VolumeNotFoundError(f"Volume {name} not found")

        if len(data) > 1:
            logger.warning(
                "Multiple volumes share a name tag, using the first",
                extra={
                    "event": LogEvent.DUPLICATE_NAME_TAG,
                    "volume": name,
                    "volume_ids": [v["VolumeId"] for v in data],
                },
            )
        return Volume.from_api(data[0])

    async def list_all(self) -> list[Volume]:
        """All volumes carrying a Name tag, whatever its value."""
        data = await self._ec2.describe_volumes({"tag-key": [NAME_TAG]})
        return [Volume.from_api(v) for v in data]

    async def devices_attached_to(self, instance_id: str) -> set[str]:
        """EC2 device names of every volume attached to the instance."""
        data = await self._ec2.describe_volumes({"attachment.instance-id": [instance_id]})
        devices: set[str] = set()
        for vol in data:
            for att in vol.get("Attachments", []):
                if att.get("InstanceId") == instance_id:
                    devices.add(att["Device"])
        return devices

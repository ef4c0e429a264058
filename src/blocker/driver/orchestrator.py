"""Volume lifecycle: create, mount, unmount and the read-only projections."""

from __future__ import annotations

import logging
import os

from blocker.config import MountConfig
from blocker.driver.allocator import DeviceAllocator
from blocker.driver.lock import VolumeLocks
from blocker.driver.models import NAME_TAG, Volume
from blocker.driver.naming import MountNaming, parse_path
from blocker.driver.registry import VolumeRegistry
from blocker.errors import MountpointError, NotMountedError
from blocker.infra import Ec2Operations, HostCommands
from blocker.logging_schema import LogEvent
from blocker.metrics import BLOCKER_MOUNTED_VOLUMES

logger = logging.getLogger(__name__)

CAPABILITIES = {"Scope": "global"}


def parse_size(options: dict[str, str] | None) -> int:
    """Size in GiB from the create options.

    A missing or malformed size becomes 0 and is logged; EC2 then rejects
    the CreateVolume call with its own validation error.
    """
    raw = (options or {}).get("size")
    try:
        return int(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        logger.warning(
            "Missing or malformed size option, using 0",
            extra={"event": LogEvent.INVALID_SIZE_OPTION, "size": raw},
        )
        return 0


class VolumeDriver:
    """Drives named EBS volumes through create, attach, format, mount and back.

    Every lifecycle operation holds the per-name lock for its whole
    duration. When a step after attach fails, the volume is detached
    again on a best-effort basis and the original error is raised.
    """

    def __init__(
        self,
        ec2: Ec2Operations,
        registry: VolumeRegistry,
        allocator: DeviceAllocator,
        commands: HostCommands,
        config: MountConfig,
        availability_zone: str,
        locks: VolumeLocks | None = None,
    ) -> None:
        self._ec2 = ec2
        self._registry = registry
        self._allocator = allocator
        self._commands = commands
        self._config = config
        self._naming = MountNaming(config)
        self._zone = availability_zone
        self._locks = locks or VolumeLocks()
        self._mounted: set[str] = set()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def create(self, name: str, options: dict[str, str] | None = None) -> None:
        """Create, tag and pre-format a volume, leaving it detached."""
        size = parse_size(options)
        async with self._locks.hold(name):
            resp = await self._ec2.create_volume(size, self._zone)
            volume = Volume.from_api(resp).model_copy(update={"name": name})
            await self._ec2.create_tags(volume.volume_id, {NAME_TAG: name})
            logger.info(
                "Volume created",
                extra={
                    "event": LogEvent.VOLUME_CREATED,
                    "volume": name,
                    "volume_id": volume.volume_id,
                    "size": size,
                },
            )

            device = await self._allocator.attach(volume)
            try:
                await self._commands.format(self._config.fs_type, device)
            except Exception:
                await self._allocator.detach_quietly(volume)
                raise
            logger.info(
                "Volume formatted",
                extra={"event": LogEvent.VOLUME_FORMATTED, "volume": name, "device": device},
            )

            await self._allocator.detach(volume)

    async def mount(self, path: str) -> str:
        """Mount the volume named by the first path component.

        Returns the mountpoint joined with the rest of the path. A volume
        that is already mounted is returned as-is without reattaching.
        """
        name, sub_path = parse_path(path)
        async with self._locks.hold(name):
            mnt = await self._do_mount(name)
        return mnt + sub_path

    async def _is_mounted(self, mnt: str) -> bool:
        return os.path.isdir(mnt) and await self._commands.is_mountpoint(mnt)

    async def _do_mount(self, name: str) -> str:
        mnt = self._naming.mount_dir(name)
        if await self._is_mounted(mnt):
            # Mounted before this process started, or by an earlier request
            self._track_mounted(name)
            return mnt

        os.makedirs(self._naming.root, mode=self._config.dir_mode, exist_ok=True)

        volume = await self._registry.find_by_name(name)
        device = await self._allocator.attach(volume)

        try:
            os.makedirs(mnt, mode=self._config.dir_mode, exist_ok=True)
            await self._commands.mount(device, mnt)
        except Exception:
            self._remove_dir_quietly(mnt)
            await self._allocator.detach_quietly(volume)
            raise

        self._track_mounted(name)
        logger.info(
            "Volume mounted",
            extra={"event": LogEvent.VOLUME_MOUNTED, "volume": name, "device": device, "mountpoint": mnt},
        )
        return mnt

    def _track_mounted(self, name: str, mounted: bool = True) -> None:
        if mounted:
            self._mounted.add(name)
        else:
            self._mounted.discard(name)
        BLOCKER_MOUNTED_VOLUMES.set(len(self._mounted))

    def _remove_dir_quietly(self, mnt: str) -> None:
        try:
            os.rmdir(mnt)
        except OSError as e:
            logger.warning("Failed to remove mountpoint", extra={"mountpoint": mnt, "error": str(e)})

    async def unmount(self, path: str) -> None:
        """Unmount, remove the mountpoint, then detach.

        A failed umount stops here so a busy mountpoint is never removed.
        A mountpoint that cannot be removed also stops before detach.
        """
        name, _ = parse_path(path)
        async with self._locks.hold(name):
            mnt = self._naming.mount_dir(name)
            await self._commands.unmount(mnt)

            self._track_mounted(name, mounted=False)
            logger.info(
                "Volume unmounted",
                extra={"event": LogEvent.VOLUME_UNMOUNTED, "volume": name, "mountpoint": mnt},
            )

            try:
                os.rmdir(mnt)
            except OSError as e:
                raise MountpointError(mnt, e.strerror or str(e)) from e

            volume = await self._registry.find_by_name(name)
            await self._allocator.detach(volume)

    async def remove(self, path: str) -> None:
        await self.unmount(path)

    # =========================================================================
    # Read-only projections
    # =========================================================================

    def path(self, path: str) -> str:
        """Expected mountpoint for path if it exists as a directory.

        Raises:
            NotMountedError: The mountpoint directory does not exist.
        """
        name, sub_path = parse_path(path)
        mnt = self._naming.mount_dir(name) + sub_path
        if not os.path.isdir(mnt):
            raise NotMountedError()
        return mnt

    def _describe(self, volume: Volume) -> dict[str, str]:
        info = {
            "Name": volume.name,
            "AwsVolumeId": volume.volume_id,
            "State": volume.state.value,
        }
        try:
            info["Mountpoint"] = self.path(volume.name)
        except NotMountedError:
            pass
        return info

    async def get(self, name: str) -> dict[str, str]:
        volume = await self._registry.find_by_name(name)
        return self._describe(volume)

    async def list(self) -> list[dict[str, str]]:
        volumes = await self._registry.list_all()
        return [self._describe(v) for v in volumes]

    def capabilities(self) -> dict[str, str]:
        return dict(CAPABILITIES)

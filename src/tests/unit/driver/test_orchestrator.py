"""Unit tests for VolumeDriver."""

import asyncio
import logging
import os
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from prometheus_client import REGISTRY

from blocker.config import BlockerConfig, MountConfig
from blocker.driver import BlockerRuntime
from blocker.driver.allocator import DeviceAllocator
from blocker.driver.lock import VolumeLocks
from blocker.driver.models import Volume
from blocker.driver.orchestrator import VolumeDriver, parse_size
from blocker.driver.registry import VolumeRegistry
from blocker.errors import (
    CommandFailureError,
    MountpointError,
    NotMountedError,
    ProviderAPIError,
    VolumeNotFoundError,
)
from blocker.infra import InstanceIdentity
from fakes import FakeCommands, FakeEc2, ebs_volume


class TestParseSize:
    """Tests for create option parsing."""

    def test_valid_size(self) -> None:
        assert parse_size({"size": "10"}) == 10

    def test_missing_size_is_zero(self) -> None:
        assert parse_size({}) == 0
        assert parse_size(None) == 0

    def test_malformed_size_is_zero_and_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            assert parse_size({"size": "ten"}) == 0
        assert "malformed size" in caplog.text


class TestVolumeDriverWithMocks:
    """Behaviour that is easiest to pin down with mocked collaborators."""

    @pytest.fixture
    def registry(self) -> AsyncMock:
        registry = AsyncMock(spec=VolumeRegistry)
        registry.find_by_name.return_value = Volume.from_api(ebs_volume("vol-1", "vol1"))
        return registry

    @pytest.fixture
    def allocator(self) -> AsyncMock:
        allocator = AsyncMock(spec=DeviceAllocator)
        allocator.attach.return_value = "/dev/xvdf"
        return allocator

    @pytest.fixture
    def driver(
        self,
        mock_ec2: AsyncMock,
        registry: AsyncMock,
        allocator: AsyncMock,
        mock_commands: AsyncMock,
        mount_config: MountConfig,
    ) -> VolumeDriver:
        return VolumeDriver(
            mock_ec2, registry, allocator, mock_commands, mount_config, "us-east-1a"
        )

    async def test_mount_already_mounted_skips_attach(
        self,
        driver: VolumeDriver,
        allocator: AsyncMock,
        mock_commands: AsyncMock,
        mount_root: Path,
    ) -> None:
        (mount_root / "vol1").mkdir(parents=True)
        mock_commands.is_mountpoint.return_value = True

        mountpoint = await driver.mount("vol1")

        assert mountpoint == str(mount_root / "vol1")
        allocator.attach.assert_not_called()
        mock_commands.mount.assert_not_called()

    async def test_mount_appends_sub_path(
        self, driver: VolumeDriver, mock_commands: AsyncMock, mount_root: Path
    ) -> None:
        mountpoint = await driver.mount("vol1/data/logs")

        assert mountpoint == str(mount_root / "vol1") + "/data/logs"
        mock_commands.mount.assert_awaited_once_with("/dev/xvdf", str(mount_root / "vol1"))

    async def test_mount_failure_detaches_and_removes_mountpoint(
        self,
        driver: VolumeDriver,
        allocator: AsyncMock,
        mock_commands: AsyncMock,
        mount_root: Path,
    ) -> None:
        mock_commands.mount.side_effect = CommandFailureError(
            ["mount", "/dev/xvdf", "x"], 32, "wrong fs type", "Mounting failed"
        )

        with pytest.raises(CommandFailureError):
            await driver.mount("vol1")

        allocator.detach_quietly.assert_awaited_once()
        assert not (mount_root / "vol1").exists()
        assert mount_root.is_dir()

    async def test_mount_unknown_volume(
        self, driver: VolumeDriver, registry: AsyncMock, allocator: AsyncMock, mount_root: Path
    ) -> None:
        registry.find_by_name.side_effect = VolumeNotFoundError("Volume nope not found")

        with pytest.raises(VolumeNotFoundError):
            await driver.mount("nope")

        allocator.attach.assert_not_called()
        assert not (mount_root / "nope").exists()

    async def test_unmount_failure_keeps_mountpoint_and_attachment(
        self,
        driver: VolumeDriver,
        allocator: AsyncMock,
        mock_commands: AsyncMock,
        mount_root: Path,
    ) -> None:
        (mount_root / "vol1").mkdir(parents=True)
        mock_commands.unmount.side_effect = CommandFailureError(
            ["umount", "x"], 32, "target is busy", "Unmounting failed"
        )

        with pytest.raises(CommandFailureError):
            await driver.unmount("vol1")

        assert (mount_root / "vol1").is_dir()
        allocator.detach.assert_not_called()

    async def test_mount_already_mounted_is_counted(
        self, driver: VolumeDriver, mock_commands: AsyncMock, mount_root: Path
    ) -> None:
        """A mount left from a previous run still shows up in the gauge."""
        (mount_root / "vol1").mkdir(parents=True)
        mock_commands.is_mountpoint.return_value = True

        await driver.mount("vol1")

        assert REGISTRY.get_sample_value("blocker_mounted_volumes") == 1

    async def test_unmount_mountpoint_not_removable(
        self,
        driver: VolumeDriver,
        allocator: AsyncMock,
        mock_commands: AsyncMock,
        mount_root: Path,
    ) -> None:
        (mount_root / "vol1").mkdir(parents=True)
        (mount_root / "vol1" / "leftover").touch()
        mock_commands.is_mountpoint.return_value = True
        await driver.mount("vol1")

        with pytest.raises(MountpointError) as exc_info:
            await driver.unmount("vol1")

        assert exc_info.value.mountpoint == str(mount_root / "vol1")
        assert exc_info.value.message.startswith(
            f"Removing mountpoint {mount_root / 'vol1'} failed"
        )
        mock_commands.unmount.assert_awaited_once()
        allocator.detach.assert_not_called()
        assert REGISTRY.get_sample_value("blocker_mounted_volumes") == 0

    async def test_unmount_order(
        self,
        driver: VolumeDriver,
        allocator: AsyncMock,
        mock_commands: AsyncMock,
        mount_root: Path,
    ) -> None:
        (mount_root / "vol1").mkdir(parents=True)
        order = MagicMock()
        order.attach_mock(mock_commands.unmount, "unmount")
        order.attach_mock(allocator.detach, "detach")

        await driver.unmount("vol1/sub")

        assert [c[0] for c in order.mock_calls] == ["unmount", "detach"]
        assert not (mount_root / "vol1").exists()

    async def test_create_format_failure_returns_format_error(
        self,
        driver: VolumeDriver,
        mock_ec2: AsyncMock,
        allocator: AsyncMock,
        mock_commands: AsyncMock,
    ) -> None:
        mock_ec2.create_volume.return_value = {"VolumeId": "vol-1", "State": "creating", "Size": 10}
        mock_commands.format.side_effect = CommandFailureError(
            ["mkfs", "-t", "ext4", "/dev/xvdf"], 1, "bad superblock",
            "Formatting device /dev/xvdf failed",
        )

        with pytest.raises(CommandFailureError) as exc_info:
            await driver.create("vol1", {"size": "10"})

        assert exc_info.value.message.startswith("Formatting device /dev/xvdf failed")
        allocator.detach_quietly.assert_awaited_once()
        allocator.detach.assert_not_called()

    async def test_create_tags_new_volume_and_formats(
        self,
        driver: VolumeDriver,
        mock_ec2: AsyncMock,
        allocator: AsyncMock,
        mock_commands: AsyncMock,
    ) -> None:
        mock_ec2.create_volume.return_value = {"VolumeId": "vol-1", "State": "creating", "Size": 10}

        await driver.create("vol1", {"size": "10"})

        mock_ec2.create_volume.assert_awaited_once_with(10, "us-east-1a")
        mock_ec2.create_tags.assert_awaited_once_with("vol-1", {"Name": "vol1"})
        attached = allocator.attach.await_args.args[0]
        assert attached.name == "vol1"
        assert attached.volume_id == "vol-1"
        mock_commands.format.assert_awaited_once_with("ext4", "/dev/xvdf")
        allocator.detach.assert_awaited_once()

    async def test_create_provider_error_before_attach(
        self, driver: VolumeDriver, mock_ec2: AsyncMock, allocator: AsyncMock
    ) -> None:
        mock_ec2.create_volume.side_effect = ProviderAPIError(
            "InvalidParameterValue", "size must be at least 1", "CreateVolume"
        )

        with pytest.raises(ProviderAPIError):
            await driver.create("vol1", {})

        allocator.attach.assert_not_called()

    def test_path_not_mounted(self, driver: VolumeDriver) -> None:
        with pytest.raises(NotMountedError) as exc_info:
            driver.path("vol1")
        assert exc_info.value.message == "Volume not mounted."

    def test_capabilities(self, driver: VolumeDriver) -> None:
        assert driver.capabilities() == {"Scope": "global"}

    async def test_same_name_operations_are_serialized(
        self, mock_ec2: AsyncMock, registry: AsyncMock, mock_commands: AsyncMock, mount_config: MountConfig
    ) -> None:
        events: list[str] = []
        release = asyncio.Event()

        async def slow_attach(volume: Volume) -> str:
            events.append("attach-start")
            await release.wait()
            events.append("attach-end")
            return "/dev/xvdf"

        async def record_unmount(directory: str) -> None:
            events.append("unmount")

        allocator = AsyncMock(spec=DeviceAllocator)
        allocator.attach.side_effect = slow_attach
        mock_commands.unmount.side_effect = record_unmount
        locks = VolumeLocks()
        driver = VolumeDriver(
            mock_ec2, registry, allocator, mock_commands, mount_config, "us-east-1a", locks
        )

        mount_task = asyncio.create_task(driver.mount("vol1"))
        await asyncio.sleep(0)
        unmount_task = asyncio.create_task(driver.unmount("vol1"))
        await asyncio.sleep(0)
        assert events == ["attach-start"]

        release.set()
        await asyncio.gather(mount_task, unmount_task)

        assert events == ["attach-start", "attach-end", "unmount"]
        assert "vol1" not in locks


class TestVolumeLifecycle:
    """End-to-end lifecycle against the in-memory EC2 and host fakes."""

    @pytest.fixture
    def runtime(
        self,
        identity: InstanceIdentity,
        blocker_config: BlockerConfig,
        fake_ec2: FakeEc2,
        fake_commands: FakeCommands,
    ) -> BlockerRuntime:
        return BlockerRuntime(identity, blocker_config, ec2=fake_ec2, commands=fake_commands)

    async def test_create_mount_path_unmount(
        self,
        runtime: BlockerRuntime,
        fake_ec2: FakeEc2,
        fake_commands: FakeCommands,
        mount_root: Path,
        dev_root: Path,
    ) -> None:
        driver = runtime.volumes
        expected = str(mount_root / "vol1")

        await driver.create("vol1", {"size": "10"})

        assert fake_ec2.call_names() == [
            "create_volume", "create_tags", "attach_volume", "detach_volume",
        ]
        volume = fake_ec2.volumes["vol-0001"]
        assert volume["Size"] == 10
        assert volume["Tags"] == [{"Key": "Name", "Value": "vol1"}]
        assert volume["State"] == "available"
        assert volume["Attachments"] == []
        assert fake_commands.formatted == [str(dev_root / "xvdf")]

        assert await driver.mount("vol1") == expected
        assert driver.path("vol1") == expected
        assert fake_commands.mounted == {expected: str(dev_root / "xvdf")}

        await driver.unmount("vol1")

        with pytest.raises(NotMountedError):
            driver.path("vol1")
        assert fake_ec2.volumes["vol-0001"]["Attachments"] == []
        assert not os.path.lexists(dev_root / "xvdf")

    async def test_create_format_failure_leaves_volume_available(
        self, runtime: BlockerRuntime, fake_ec2: FakeEc2, fake_commands: FakeCommands
    ) -> None:
        fake_commands.format_error = True

        with pytest.raises(CommandFailureError) as exc_info:
            await runtime.volumes.create("vol1", {"size": "10"})

        assert "Formatting device" in exc_info.value.message
        volume = fake_ec2.volumes["vol-0001"]
        assert volume["State"] == "available"
        assert volume["Attachments"] == []

    async def test_mount_is_idempotent(
        self, runtime: BlockerRuntime, fake_ec2: FakeEc2
    ) -> None:
        fake_ec2.volumes["vol-1"] = ebs_volume("vol-1", "vol1")

        first = await runtime.volumes.mount("vol1")
        attaches = fake_ec2.call_names().count("attach_volume")
        second = await runtime.volumes.mount("vol1")

        assert first == second
        assert fake_ec2.call_names().count("attach_volume") == attaches == 1

    async def test_unmount_then_mount_round_trips(
        self, runtime: BlockerRuntime, fake_ec2: FakeEc2, mount_root: Path
    ) -> None:
        fake_ec2.volumes["vol-1"] = ebs_volume("vol-1", "vol1")

        first = await runtime.volumes.mount("vol1")
        await runtime.volumes.remove("vol1")
        second = await runtime.volumes.mount("vol1")

        assert first == second == str(mount_root / "vol1")
        assert fake_ec2.call_names() == ["attach_volume", "detach_volume", "attach_volume"]

    async def test_two_volumes_mount_on_different_slots(
        self, runtime: BlockerRuntime, fake_ec2: FakeEc2, fake_commands: FakeCommands, dev_root: Path
    ) -> None:
        fake_ec2.volumes["vol-1"] = ebs_volume("vol-1", "vol1")
        fake_ec2.volumes["vol-2"] = ebs_volume("vol-2", "vol2")

        await asyncio.gather(runtime.volumes.mount("vol1"), runtime.volumes.mount("vol2"))

        assert sorted(fake_commands.mounted.values()) == [
            str(dev_root / "xvdf"),
            str(dev_root / "xvdg"),
        ]

    async def test_get_and_list_report_mountpoint(
        self, runtime: BlockerRuntime, fake_ec2: FakeEc2, mount_root: Path
    ) -> None:
        fake_ec2.volumes["vol-1"] = ebs_volume("vol-1", "vol1")
        fake_ec2.volumes["vol-2"] = ebs_volume("vol-2", "vol2")
        fake_ec2.volumes["vol-3"] = ebs_volume("vol-3", None)

        await runtime.volumes.mount("vol1")

        assert await runtime.volumes.get("vol1") == {
            "Name": "vol1",
            "AwsVolumeId": "vol-1",
            "State": "in-use",
            "Mountpoint": str(mount_root / "vol1"),
        }
        volumes = await runtime.volumes.list()
        assert [v["Name"] for v in volumes] == ["vol1", "vol2"]
        assert "Mountpoint" not in volumes[1]

    async def test_get_unknown_volume(self, runtime: BlockerRuntime) -> None:
        with pytest.raises(VolumeNotFoundError):
            await runtime.volumes.get("nope")

"""Fixtures for blocker unit tests."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from blocker.config import BlockerConfig, MountConfig, PollConfig
from blocker.infra import Ec2Operations, HostCommands, InstanceIdentity
from fakes import INSTANCE_ID, FakeCommands, FakeEc2


@pytest.fixture
def dev_root(tmp_path: Path) -> Path:
    path = tmp_path / "dev"
    path.mkdir()
    return path


@pytest.fixture
def mount_root(tmp_path: Path) -> Path:
    return tmp_path / "mnt" / "blocker"


@pytest.fixture
def mount_config(dev_root: Path, mount_root: Path) -> MountConfig:
    return MountConfig(root=str(mount_root), dev_root=str(dev_root))


@pytest.fixture
def poll_config() -> PollConfig:
    """Full attempt budget without the sleeps."""
    return PollConfig(max_attempts=12, interval=0)


@pytest.fixture
def blocker_config(mount_config: MountConfig, poll_config: PollConfig) -> BlockerConfig:
    return BlockerConfig(mount=mount_config, poll=poll_config)


@pytest.fixture
def identity() -> InstanceIdentity:
    return InstanceIdentity(
        instance_id=INSTANCE_ID,
        region="us-east-1",
        availability_zone="us-east-1a",
    )


@pytest.fixture
def mock_ec2() -> AsyncMock:
    """Mock Ec2Operations for testing."""
    api = AsyncMock(spec=Ec2Operations)
    api.describe_volumes = AsyncMock(return_value=[])
    api.create_volume = AsyncMock()
    api.create_tags = AsyncMock()
    api.attach_volume = AsyncMock(return_value={})
    api.detach_volume = AsyncMock(return_value={})
    return api


@pytest.fixture
def mock_commands() -> AsyncMock:
    """Mock HostCommands for testing."""
    commands = AsyncMock(spec=HostCommands)
    commands.is_mountpoint = AsyncMock(return_value=False)
    return commands


@pytest.fixture
def fake_ec2(dev_root: Path) -> FakeEc2:
    return FakeEc2(dev_root)


@pytest.fixture
def fake_commands() -> FakeCommands:
    return FakeCommands()

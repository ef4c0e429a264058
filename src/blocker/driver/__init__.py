"""EBS volume driver."""

from blocker.config import BlockerConfig, get_config
from blocker.driver.allocator import DeviceAllocator
from blocker.driver.lock import VolumeLocks
from blocker.driver.naming import DeviceSlot, MountNaming, parse_path
from blocker.driver.orchestrator import VolumeDriver
from blocker.driver.poller import StatePoller
from blocker.driver.registry import VolumeRegistry
from blocker.infra import Ec2Operations, HostCommands, InstanceIdentity


class BlockerRuntime:
    """Driver wiring for one EC2 instance.

    Holds the slot lock and the per-volume locks, so exactly one runtime
    should exist per process.
    """

    def __init__(
        self,
        identity: InstanceIdentity,
        config: BlockerConfig | None = None,
        ec2: Ec2Operations | None = None,
        commands: HostCommands | None = None,
    ) -> None:
        self._config = config or get_config()
        self.identity = identity

        self.ec2 = ec2 or Ec2Operations(self._config.ec2, identity.region)
        self.registry = VolumeRegistry(self.ec2)
        self.poller = StatePoller(self.registry, self._config.poll)
        self.allocator = DeviceAllocator(
            self.ec2,
            self.registry,
            self.poller,
            identity.instance_id,
            self._config.mount,
        )
        self.volumes = VolumeDriver(
            self.ec2,
            self.registry,
            self.allocator,
            commands or HostCommands(),
            self._config.mount,
            identity.availability_zone,
        )


__all__ = [
    "BlockerRuntime",
    "DeviceAllocator",
    "DeviceSlot",
    "MountNaming",
    "StatePoller",
    "VolumeDriver",
    "VolumeLocks",
    "VolumeRegistry",
    "parse_path",
]

"""Naming conventions for devices and mountpoints."""

import os
import re

from blocker.config import MountConfig

# EBS recommended device letters for data volumes, in scan order
SLOT_LETTERS = "fghijklmnop"

_DEVICE_RE = re.compile(r"/dev/(?:xv|s)d([f-p])$")


def parse_path(path: str) -> tuple[str, str]:
    """Split "name/sub/dir" into ("name", "/sub/dir") at the first separator."""
    sep = path.find("/")
    if sep < 0:
        return path, ""
    return path[:sep], path[sep:]


class DeviceSlot:
    """One attach slot and its two local device aliases.

    EC2 is always asked for /dev/sdX; depending on the kernel the device
    shows up locally as either /dev/sdX or /dev/xvdX.
    """

    def __init__(self, letter: str, dev_root: str = "/dev") -> None:
        self.letter = letter
        self._dev_root = dev_root

    def __repr__(self) -> str:
        return f"DeviceSlot({self.letter!r})"

    @classmethod
    def all(cls, dev_root: str = "/dev") -> list["DeviceSlot"]:
        return [cls(c, dev_root) for c in SLOT_LETTERS]

    @classmethod
    def from_device(cls, device: str, dev_root: str = "/dev") -> "DeviceSlot | None":
        """Slot for an EC2 attachment device name, or None if outside sd[f-p]."""
        match = _DEVICE_RE.match(device)
        if match is None:
            return None
        return cls(match.group(1), dev_root)

    @property
    def request_device(self) -> str:
        """Device name sent to EC2 in AttachVolume."""
        return f"/dev/sd{self.letter}"

    @property
    def aliases(self) -> tuple[str, str]:
        """Local paths the device may appear under, preferred first."""
        return (
            os.path.join(self._dev_root, f"sd{self.letter}"),
            os.path.join(self._dev_root, f"xvd{self.letter}"),
        )

    def local_device(self) -> str | None:
        """The alias that exists on this host, if any."""
        for path in self.aliases:
            if os.path.lexists(path):
                return path
        return None

    def occupied_locally(self) -> bool:
        return self.local_device() is not None


class MountNaming:
    """Mountpoint layout under the configured mount root."""

    def __init__(self, config: MountConfig) -> None:
        self._root = config.root

    @property
    def root(self) -> str:
        return self._root

    def mount_dir(self, name: str) -> str:
        return os.path.join(self._root, name)

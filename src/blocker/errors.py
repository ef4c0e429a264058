"""Error handling module for blocker.

This module defines error codes and exception classes. At the plugin
boundary every error is flattened to its message:

{
    "Err": "No devices available for attach: /dev/sd[f-p] taken."
}

Usage:
    from blocker.errors import VolumeNotFoundError, NotMountedError

    # Raise with default message
    raise NotMountedError()

    # Raise with custom message
    raise VolumeNotFoundError("Volume vol1 not found")
"""

from enum import Enum

from botocore.exceptions import ClientError


class ErrorCode(str, Enum):
    """Error codes."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    VOLUME_NOT_FOUND = "VOLUME_NOT_FOUND"
    NOT_MOUNTED = "NOT_MOUNTED"
    DEVICE_EXHAUSTED = "DEVICE_EXHAUSTED"
    STATE_TRANSITION_TIMEOUT = "STATE_TRANSITION_TIMEOUT"
    DEVICE_MISSING_AFTER_ATTACH = "DEVICE_MISSING_AFTER_ATTACH"
    COMMAND_FAILURE = "COMMAND_FAILURE"
    PROVIDER_API_ERROR = "PROVIDER_API_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"
    MOUNTPOINT_ERROR = "MOUNTPOINT_ERROR"


# EC2 reports a device name already used on the instance with this code
DEVICE_IN_USE_CODE = "InvalidParameterValue"


class BlockerError(Exception):
    """Base exception for blocker.

    All plugin-specific exceptions inherit from this class so the
    adapter can flatten them in one place.

    Attributes:
        code: The error code from ErrorCode enum
        message: Human-readable error message
    """

    def __init__(self, code: ErrorCode, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(message)


class ConfigurationError(BlockerError):
    """Host is not a usable EC2 instance. Fatal at startup."""

    def __init__(self, message: str = "Not running on an EC2 instance.") -> None:
        super().__init__(ErrorCode.CONFIGURATION_ERROR, message)


class VolumeNotFoundError(BlockerError):
    """No EBS volume carries the requested name tag."""

    def __init__(self, message: str = "Volume not found") -> None:
        super().__init__(ErrorCode.VOLUME_NOT_FOUND, message)


class NotMountedError(BlockerError):
    def __init__(self, message: str = "Volume not mounted.") -> None:
        super().__init__(ErrorCode.NOT_MOUNTED, message)


class DeviceExhaustedError(BlockerError):
    def __init__(
        self, message: str = "No devices available for attach: /dev/sd[f-p] taken."
    ) -> None:
        super().__init__(ErrorCode.DEVICE_EXHAUSTED, message)


class StateTransitionTimeoutError(BlockerError):
    """Poll budget exhausted.

    The message is the last failure reason reported by the condition,
    not a generic timeout text.
    """

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.STATE_TRANSITION_TIMEOUT, message)


class DeviceMissingAfterAttachError(BlockerError):
    def __init__(self, device: str) -> None:
        self.device = device
        super().__init__(
            ErrorCode.DEVICE_MISSING_AFTER_ATTACH,
            f"Device {device} is missing after attach.",
        )


class CommandFailureError(BlockerError):
    """An OS utility exited non-zero.

    Attributes:
        argv: Command line that was run
        returncode: Exit status
        output: Combined stdout and stderr
    """

    def __init__(self, argv: list[str], returncode: int, output: str, message: str = "") -> None:
        self.argv = argv
        self.returncode = returncode
        self.output = output
        if not message:
            message = f"Command {' '.join(argv)} failed with exit status {returncode}"
        super().__init__(ErrorCode.COMMAND_FAILURE, f"{message}\n{output}")


class ProviderAPIError(BlockerError):
    """Pass-through failure from the EC2 API.

    Attributes:
        error_code: EC2 error code (e.g. InvalidParameterValue)
        operation: EC2 operation name
    """

    def __init__(self, error_code: str, message: str, operation: str = "") -> None:
        self.error_code = error_code
        self.operation = operation
        super().__init__(ErrorCode.PROVIDER_API_ERROR, message)

    @classmethod
    def from_client_error(cls, exc: ClientError) -> "ProviderAPIError":
        error = exc.response.get("Error", {})
        return cls(
            error_code=error.get("Code", ""),
            message=str(exc),
            operation=exc.operation_name,
        )

    @property
    def device_in_use(self) -> bool:
        """True when EC2 rejected an attach because the device name is taken."""
        return self.error_code == DEVICE_IN_USE_CODE


class InvalidRequestError(BlockerError):
    """Plugin request body did not match the protocol schema."""

    def __init__(self, message: str = "Invalid plugin request") -> None:
        super().__init__(ErrorCode.INVALID_REQUEST, message)


class MountpointError(BlockerError):
    """A mountpoint directory could not be removed after unmount."""

    def __init__(self, mountpoint: str, reason: str) -> None:
        self.mountpoint = mountpoint
        super().__init__(
            ErrorCode.MOUNTPOINT_ERROR,
            f"Removing mountpoint {mountpoint} failed: {reason}",
        )

"""API dependencies for dependency injection."""

import logging

from blocker.config import get_config
from blocker.driver import BlockerRuntime
from blocker.infra import InstanceIdentity, MetadataClient
from blocker.logging_schema import LogEvent

logger = logging.getLogger(__name__)

# Singleton runtime instance
_runtime: BlockerRuntime | None = None


async def detect_instance() -> InstanceIdentity:
    """Resolve this host's EC2 identity.

    Raises:
        ConfigurationError: Not running on an EC2 instance.
    """
    metadata = MetadataClient(get_config().ec2)
    try:
        identity = await metadata.identity()
    finally:
        await metadata.close()

    logger.info(
        "Auto-detected EC2 information",
        extra={
            "event": LogEvent.INSTANCE_DETECTED,
            "instance_id": identity.instance_id,
            "region": identity.region,
            "availability_zone": identity.availability_zone,
        },
    )
    return identity


async def init_runtime() -> None:
    """Initialize runtime singleton.

    Must be called during app startup. A host that is not an EC2
    instance raises ConfigurationError, which aborts startup.
    """
    global _runtime
    identity = await detect_instance()
    _runtime = BlockerRuntime(identity)


async def close_runtime() -> None:
    """Drop the runtime. Mounted volumes are left as they are."""
    global _runtime
    _runtime = None


def get_runtime() -> BlockerRuntime:
    """Get runtime singleton.

    Returns:
        BlockerRuntime instance shared across all plugin endpoints.

    Raises:
        RuntimeError: If called before init_runtime().
    """
    if _runtime is None:
        raise RuntimeError("Runtime not initialized. Call init_runtime() first.")
    return _runtime


def reset_runtime() -> None:
    """Reset runtime singleton (for testing)."""
    global _runtime
    _runtime = None

"""Prometheus metrics definitions for Blocker.

Tracks the slow, failure-prone edges of the volume lifecycle:
- EC2 API calls (create, describe, attach, detach)
- OS commands (mkfs, mount, umount)
- State polling
"""

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Histogram Buckets
# =============================================================================
# EC2 calls and mkfs are typically slow (100ms ~ 60s)
_BUCKETS_SLOW = (
    0.1, 0.2, 0.4, 0.8, 1.5,
    3, 6, 12, 24, 48,
    96,
)

# =============================================================================
# EC2 Operation Metrics
# =============================================================================

BLOCKER_EC2_DURATION = Histogram(
    "blocker_ec2_duration_seconds",
    "Duration of EC2 API calls",
    ["operation"],  # create_volume, create_tags, describe_volumes, attach_volume, detach_volume
    buckets=_BUCKETS_SLOW,
)

BLOCKER_EC2_ERRORS = Counter(
    "blocker_ec2_errors_total",
    "Total EC2 API errors",
    ["operation", "error_code"],
)

# =============================================================================
# Host Command Metrics
# =============================================================================

BLOCKER_COMMAND_DURATION = Histogram(
    "blocker_command_duration_seconds",
    "Duration of host commands",
    ["command"],  # mkfs, mount, umount, mountpoint
    buckets=_BUCKETS_SLOW,
)

BLOCKER_COMMAND_FAILURES = Counter(
    "blocker_command_failures_total",
    "Total host commands that exited non-zero",
    ["command"],
)

# =============================================================================
# Polling and Resource Metrics
# =============================================================================

BLOCKER_POLL_ATTEMPTS = Counter(
    "blocker_poll_attempts_total",
    "Total condition checks made while waiting for EBS state",
    ["condition"],  # attached, detached, available
)

BLOCKER_MOUNTED_VOLUMES = Gauge(
    "blocker_mounted_volumes",
    "Volumes mounted by this process",
)


def _init_metrics() -> None:
    """Initialize labeled metrics with zero values."""
    for op in ["create_volume", "create_tags", "describe_volumes", "attach_volume", "detach_volume"]:
        BLOCKER_EC2_DURATION.labels(operation=op)

    for cmd in ["mkfs", "mount", "umount", "mountpoint"]:
        BLOCKER_COMMAND_DURATION.labels(command=cmd)
        BLOCKER_COMMAND_FAILURES.labels(command=cmd)

    for condition in ["attached", "detached", "available"]:
        BLOCKER_POLL_ATTEMPTS.labels(condition=condition)


_init_metrics()

"""Blocker infrastructure layer."""

from blocker.infra.commands import CommandResult, HostCommands
from blocker.infra.ec2 import Ec2Operations
from blocker.infra.metadata import InstanceIdentity, MetadataClient

__all__ = [
    # EC2
    "Ec2Operations",
    "InstanceIdentity",
    "MetadataClient",
    # Host
    "CommandResult",
    "HostCommands",
]

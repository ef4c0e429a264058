"""Plugin configuration using pydantic-settings.

Configuration hierarchy:
- Ec2Config: EC2 API and instance metadata settings
- MountConfig: Local device and mountpoint layout
- PollConfig: Wait budget for asynchronous EBS state transitions
- LoggingConfig: Logging behavior
- ServerConfig: Plugin socket
- BlockerConfig: Main config aggregating all sub-configs

Environment variable prefix: BLOCKER_
Example: BLOCKER_MOUNT_ROOT=/mnt/ebs
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Ec2Config(BaseSettings):
    """EC2 API configuration.

    Region and availability zone are normally auto-detected from the
    instance metadata service; set them only for testing against an
    alternate endpoint.
    """

    model_config = SettingsConfigDict(env_prefix="BLOCKER_EC2_")

    region: str = Field(default="", description="Region override (empty = from metadata)")
    endpoint_url: str | None = Field(default=None, description="EC2 endpoint override")

    # Credentials - empty defaults fall back to the botocore credential chain
    access_key: str = Field(default="", description="AWS access key")
    secret_key: str = Field(default="", description="AWS secret key")

    metadata_url: str = Field(
        default="http://169.254.169.254",
        description="Instance metadata service base URL",
    )
    metadata_timeout: float = Field(default=2.0, description="Metadata request timeout (seconds)")


class MountConfig(BaseSettings):
    """Local device and mountpoint layout."""

    model_config = SettingsConfigDict(env_prefix="BLOCKER_MOUNT_")

    root: str = Field(default="/mnt/blocker", description="Directory holding volume mountpoints")
    fs_type: str = Field(default="ext4", description="Filesystem created on new volumes")
    dev_root: str = Field(default="/dev", description="Directory where block devices appear")
    dir_mode: int = Field(default=0o700, description="Mode for created mountpoint directories")


class PollConfig(BaseSettings):
    """Bounded wait for EBS state transitions.

    Worst case wait is (max_attempts - 1) * interval seconds of sleeping
    plus the latency of max_attempts DescribeVolumes calls.
    """

    model_config = SettingsConfigDict(env_prefix="BLOCKER_POLL_")

    max_attempts: int = Field(default=12, description="Condition checks before giving up")
    interval: float = Field(default=5.0, description="Sleep between checks (seconds)")


class LoggingConfig(BaseSettings):
    """Logging configuration.

    Supports both text and JSON formats for different environments:
    - text: Human-readable for local development
    - json: Structured logging for production (log aggregation)
    """

    model_config = SettingsConfigDict(env_prefix="BLOCKER_LOGGING_")

    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    format: str = Field(default="text", description="Log format (text, json)")
    service_name: str = Field(default="blocker", description="Service identifier in logs")


class ServerConfig(BaseSettings):
    """Plugin socket configuration."""

    model_config = SettingsConfigDict(env_prefix="BLOCKER_SERVER_")

    socket_path: str = Field(
        default="/var/run/blocker.sock",
        description="Unix socket the Docker daemon connects to",
    )


class BlockerConfig(BaseSettings):
    """Main plugin configuration aggregating all sub-configs.

    Environment variable prefix: BLOCKER_
    Sub-configs use their own prefixes (BLOCKER_EC2_, BLOCKER_MOUNT_, etc.)
    """

    model_config = SettingsConfigDict(
        env_prefix="BLOCKER_",
        env_nested_delimiter="__",
    )

    ec2: Ec2Config = Field(default_factory=Ec2Config)
    mount: MountConfig = Field(default_factory=MountConfig)
    poll: PollConfig = Field(default_factory=PollConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)


@lru_cache
def get_config() -> BlockerConfig:
    """Get cached plugin configuration singleton."""
    return BlockerConfig()

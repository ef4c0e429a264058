"""EC2 block storage client.

Thin async wrapper over the EBS calls the driver needs. Every call is
timed, and botocore ClientError is translated into ProviderAPIError so
callers never handle botocore types directly.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, TypeVar

from aiobotocore.session import AioSession, get_session
from botocore.exceptions import ClientError
from types_aiobotocore_ec2 import EC2Client

from blocker.config import Ec2Config
from blocker.errors import ProviderAPIError
from blocker.metrics import BLOCKER_EC2_DURATION, BLOCKER_EC2_ERRORS
from blocker.retryable import with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Ec2Operations:
    """EBS operations with session reuse for connection efficiency."""

    def __init__(
        self,
        config: Ec2Config,
        region: str,
        session: AioSession | None = None,
    ) -> None:
        self._config = config
        self._region = region
        self._session = session or get_session()

    @asynccontextmanager
    async def client(self) -> AsyncGenerator[EC2Client, None]:
        kwargs: dict[str, Any] = {"region_name": self._region}
        if self._config.endpoint_url:
            kwargs["endpoint_url"] = self._config.endpoint_url
        if self._config.access_key:
            kwargs["aws_access_key_id"] = self._config.access_key
            kwargs["aws_secret_access_key"] = self._config.secret_key
        async with self._session.create_client("ec2", **kwargs) as client:
            yield client

    async def _call(
        self,
        operation: str,
        fn: Callable[[EC2Client], Awaitable[T]],
        retry: bool = False,
    ) -> T:
        async def attempt() -> T:
            async with self.client() as ec2:
                return await fn(ec2)

        start = time.monotonic()
        try:
            if retry:
                return await with_retry(attempt)
            return await attempt()
        except ClientError as e:
            err = ProviderAPIError.from_client_error(e)
            BLOCKER_EC2_ERRORS.labels(operation=operation, error_code=err.error_code).inc()
            raise err from e
        finally:
            BLOCKER_EC2_DURATION.labels(operation=operation).observe(time.monotonic() - start)

    async def create_volume(self, size: int, availability_zone: str) -> dict:
        """Create a default-type volume. Returns the CreateVolume response."""
        return await self._call(
            "create_volume",
            lambda ec2: ec2.create_volume(AvailabilityZone=availability_zone, Size=size),
        )

    async def create_tags(self, resource_id: str, tags: dict[str, str]) -> None:
        await self._call(
            "create_tags",
            lambda ec2: ec2.create_tags(
                Resources=[resource_id],
                Tags=[{"Key": k, "Value": v} for k, v in tags.items()],
            ),
            retry=True,
        )

    async def describe_volumes(self, filters: dict[str, list[str]]) -> list[dict]:
        """Describe all volumes matching the filters, following pagination."""

        async def describe(ec2: EC2Client) -> list[dict]:
            volumes: list[dict] = []
            paginator = ec2.get_paginator("describe_volumes")
            async for page in paginator.paginate(
                Filters=[{"Name": k, "Values": v} for k, v in filters.items()]
            ):
                volumes.extend(page.get("Volumes", []))
            return volumes

        return await self._call("describe_volumes", describe, retry=True)

    async def attach_volume(self, volume_id: str, instance_id: str, device: str) -> dict:
        return await self._call(
            "attach_volume",
            lambda ec2: ec2.attach_volume(
                Device=device, InstanceId=instance_id, VolumeId=volume_id
            ),
        )

    async def detach_volume(self, volume_id: str, instance_id: str) -> dict:
        return await self._call(
            "detach_volume",
            lambda ec2: ec2.detach_volume(InstanceId=instance_id, VolumeId=volume_id),
        )

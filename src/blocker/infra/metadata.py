"""EC2 instance metadata client.

Resolves the identity of the host the plugin runs on. Uses IMDSv2
(session token) so it works on instances that disable IMDSv1.
"""

import logging

import httpx
from pydantic import BaseModel

from blocker.config import Ec2Config
from blocker.errors import ConfigurationError

logger = logging.getLogger(__name__)

_TOKEN_TTL_SECONDS = "21600"


class InstanceIdentity(BaseModel):
    """Identity of the current EC2 instance."""

    instance_id: str
    region: str
    availability_zone: str

    model_config = {"frozen": True}


class MetadataClient:
    """Async client for the instance metadata service."""

    def __init__(self, config: Ec2Config, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._client = client or httpx.AsyncClient(
            base_url=config.metadata_url,
            timeout=config.metadata_timeout,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _token(self) -> str:
        resp = await self._client.put(
            "/latest/api/token",
            headers={"X-aws-ec2-metadata-token-ttl-seconds": _TOKEN_TTL_SECONDS},
        )
        resp.raise_for_status()
        return resp.text

    async def _get(self, path: str, token: str) -> str:
        resp = await self._client.get(
            f"/latest/meta-data/{path}",
            headers={"X-aws-ec2-metadata-token": token},
        )
        resp.raise_for_status()
        return resp.text.strip()

    async def identity(self) -> InstanceIdentity:
        """Fetch instance id, region and availability zone.

        Raises:
            ConfigurationError: The metadata service is unreachable or
                incomplete, i.e. this is not an EC2 instance.
        """
        try:
            token = await self._token()
            instance_id = await self._get("instance-id", token)
            zone = await self._get("placement/availability-zone", token)
            region = self._config.region or await self._get("placement/region", token)
        except httpx.HTTPError as e:
            raise ConfigurationError(f"Not running on an EC2 instance: {e}") from e

        if not instance_id or not zone or not region:
            raise ConfigurationError("Incomplete EC2 instance metadata")

        return InstanceIdentity(
            instance_id=instance_id,
            region=region,
            availability_zone=zone,
        )

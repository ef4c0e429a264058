"""Docker volume plugin protocol schemas.

Field names on the wire are PascalCase as defined by the Docker plugin
API; the Python attributes are snake_case aliases.
"""

from pydantic import BaseModel, ConfigDict, Field


class PluginModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Requests
# =============================================================================


class VolumeRequest(PluginModel):
    """Request naming a volume, optionally with a sub path (name/sub/dir)."""

    name: str = Field(alias="Name")


class CreateRequest(PluginModel):
    name: str = Field(alias="Name")
    opts: dict[str, str] | None = Field(default=None, alias="Opts")


# =============================================================================
# Responses
# =============================================================================


class ActivateResponse(PluginModel):
    implements: list[str] = Field(default=["VolumeDriver"], alias="Implements")


class ErrResponse(PluginModel):
    """Response carrying only an error string (empty on success)."""

    err: str = Field(default="", alias="Err")


class MountpointResponse(ErrResponse):
    mountpoint: str = Field(default="", alias="Mountpoint")


class VolumeResponse(ErrResponse):
    volume: dict[str, str] = Field(default_factory=dict, alias="Volume")


class VolumeListResponse(ErrResponse):
    volumes: list[dict[str, str]] = Field(default_factory=list, alias="Volumes")


class CapabilitiesResponse(PluginModel):
    capabilities: dict[str, str] = Field(alias="Capabilities")

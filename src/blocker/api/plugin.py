"""Docker volume plugin endpoints.

Every endpoint is a POST named after the plugin method. Errors raised by
the driver are flattened into the Err field by the exception handlers in
blocker.main.
"""

import logging

from fastapi import APIRouter, Depends

from blocker.api.dependencies import get_runtime
from blocker.api.schemas import (
    ActivateResponse,
    CapabilitiesResponse,
    CreateRequest,
    ErrResponse,
    MountpointResponse,
    VolumeListResponse,
    VolumeRequest,
    VolumeResponse,
)
from blocker.driver import BlockerRuntime
from blocker.logging_schema import LogEvent

logger = logging.getLogger(__name__)

router = APIRouter(tags=["plugin"])


def _done(method: str, name: str, **fields: object) -> None:
    logger.info(
        "%s done",
        method,
        extra={"event": LogEvent.REQUEST_COMPLETED, "method": method, "volume": name, **fields},
    )


@router.post("/Plugin.Activate", response_model=ActivateResponse)
async def activate() -> ActivateResponse:
    """Handshake: declare the plugin as a volume driver."""
    return ActivateResponse()


@router.post("/VolumeDriver.Create", response_model=ErrResponse)
async def create(
    req: CreateRequest,
    runtime: BlockerRuntime = Depends(get_runtime),
) -> ErrResponse:
    await runtime.volumes.create(req.name, req.opts)
    _done("Create", req.name)
    return ErrResponse()


@router.post("/VolumeDriver.Mount", response_model=MountpointResponse)
async def mount(
    req: VolumeRequest,
    runtime: BlockerRuntime = Depends(get_runtime),
) -> MountpointResponse:
    mountpoint = await runtime.volumes.mount(req.name)
    _done("Mount", req.name, mountpoint=mountpoint)
    return MountpointResponse(mountpoint=mountpoint)


@router.post("/VolumeDriver.Path", response_model=MountpointResponse)
async def path(
    req: VolumeRequest,
    runtime: BlockerRuntime = Depends(get_runtime),
) -> MountpointResponse:
    return MountpointResponse(mountpoint=runtime.volumes.path(req.name))


@router.post("/VolumeDriver.Unmount", response_model=ErrResponse)
async def unmount(
    req: VolumeRequest,
    runtime: BlockerRuntime = Depends(get_runtime),
) -> ErrResponse:
    await runtime.volumes.unmount(req.name)
    _done("Unmount", req.name)
    return ErrResponse()


@router.post("/VolumeDriver.Remove", response_model=ErrResponse)
async def remove(
    req: VolumeRequest,
    runtime: BlockerRuntime = Depends(get_runtime),
) -> ErrResponse:
    await runtime.volumes.remove(req.name)
    _done("Remove", req.name)
    return ErrResponse()


@router.post("/VolumeDriver.Get", response_model=VolumeResponse)
async def get(
    req: VolumeRequest,
    runtime: BlockerRuntime = Depends(get_runtime),
) -> VolumeResponse:
    return VolumeResponse(volume=await runtime.volumes.get(req.name))


@router.post("/VolumeDriver.List", response_model=VolumeListResponse)
async def list_volumes(
    runtime: BlockerRuntime = Depends(get_runtime),
) -> VolumeListResponse:
    return VolumeListResponse(volumes=await runtime.volumes.list())


@router.post("/VolumeDriver.Capabilities", response_model=CapabilitiesResponse)
async def capabilities(
    runtime: BlockerRuntime = Depends(get_runtime),
) -> CapabilitiesResponse:
    return CapabilitiesResponse(capabilities=runtime.volumes.capabilities())

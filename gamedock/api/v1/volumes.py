"""Volume detection endpoints."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter
from pydantic import BaseModel

from gamedock.api.dependencies import VolumeResolverDep
from gamedock.models.launch import VolumeStatus

router = APIRouter()


class VolumeResponse(BaseModel):
    category: str
    backing_name: str
    suffix: str | None
    detected: bool
    mount_path: str
    expected_mount_path: str
    conformant: bool
    friendly_name: str | None
    storage_type: str | None


class VolumeReportResponse(BaseModel):
    core: VolumeResponse
    roms: VolumeResponse
    cache: VolumeResponse
    installed: list[VolumeResponse]
    warnings: list[str]


class VolumeMetadataRequest(BaseModel):
    friendly_name: str | None = None
    storage_type: str | None = None


class VolumeMetadataResponse(BaseModel):
    backing_name: str
    friendly_name: str | None = None
    storage_type: str | None = None


def _volume(status: VolumeStatus) -> VolumeResponse:
    return VolumeResponse(
        category=status.category.value,
        backing_name=status.backing_name,
        suffix=status.suffix,
        detected=status.detected,
        mount_path=status.mount_path,
        expected_mount_path=status.expected_mount_path,
        conformant=status.conformant,
        friendly_name=status.friendly_name,
        storage_type=status.storage_type,
    )


@router.get("", response_model=VolumeReportResponse)
async def list_volumes(resolver: VolumeResolverDep) -> VolumeReportResponse:
    """Current detection status of every first-class volume."""
    report = await asyncio.to_thread(resolver.resolve)
    return VolumeReportResponse(
        core=_volume(report.core),
        roms=_volume(report.roms),
        cache=_volume(report.cache),
        installed=[_volume(s) for s in report.installed],
        warnings=report.warnings,
    )


@router.put("/{backing_name}/metadata", response_model=VolumeMetadataResponse)
async def update_volume_metadata(
    backing_name: str,
    request: VolumeMetadataRequest,
    resolver: VolumeResolverDep,
) -> VolumeMetadataResponse:
    """Set the friendly name and/or storage type of a volume."""
    entry = resolver.set_metadata(
        backing_name,
        friendly_name=request.friendly_name,
        storage_type=request.storage_type,
    )
    return VolumeMetadataResponse(backing_name=backing_name, **entry)

"""Host display and input device endpoints."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter
from pydantic import BaseModel, Field

from gamedock.api.dependencies import DevicesDep, DisplayDep, JoysticksDep
from gamedock.errors import NotFoundError

router = APIRouter()


class DisplayResponse(BaseModel):
    protocol: str
    host_socket_path: str | None
    container_socket_path: str | None


class JoystickResponse(BaseModel):
    name: str
    event_device: str
    js_device: str


class JoystickAssignmentRequest(BaseModel):
    device_id: str = Field(min_length=1)
    device_name: str | None = None


class JoystickAssignmentResponse(BaseModel):
    device_id: str
    device_name: str


@router.get("/display", response_model=DisplayResponse)
async def get_display(display: DisplayDep) -> DisplayResponse:
    """Display protocol a launch would use right now."""
    binding = await asyncio.to_thread(display.resolve)
    return DisplayResponse(**binding.describe())


@router.get("/devices/joysticks", response_model=list[JoystickResponse])
async def list_joysticks(devices: DevicesDep) -> list[JoystickResponse]:
    joysticks = await asyncio.to_thread(devices.list_joysticks)
    return [
        JoystickResponse(name=j.name, event_device=j.event_device, js_device=j.js_device)
        for j in joysticks
    ]


@router.get(
    "/devices/joysticks/assignments",
    response_model=dict[str, JoystickAssignmentResponse],
)
async def list_joystick_assignments(
    assignments: JoysticksDep,
) -> dict[str, JoystickAssignmentResponse]:
    """Assignments keyed by platform id or category (arcade, console, computer)."""
    return {
        key: JoystickAssignmentResponse(device_id=a.device_id, device_name=a.device_name)
        for key, a in assignments.load().items()
    }


@router.put(
    "/devices/joysticks/assignments/{key}",
    response_model=JoystickAssignmentResponse,
)
async def assign_joystick(
    key: str,
    request: JoystickAssignmentRequest,
    assignments: JoysticksDep,
) -> JoystickAssignmentResponse:
    assignment = assignments.assign(key, request.device_id, request.device_name)
    return JoystickAssignmentResponse(
        device_id=assignment.device_id,
        device_name=assignment.device_name,
    )


@router.delete("/devices/joysticks/assignments/{key}", status_code=204)
async def unassign_joystick(key: str, assignments: JoysticksDep) -> None:
    if not assignments.unassign(key):
        raise NotFoundError(f"No joystick assigned to {key}")

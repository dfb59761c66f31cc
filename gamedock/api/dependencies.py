"""FastAPI dependencies for the gamedock API.

Provides dependency injection for:
- Engine client
- Host-state resolvers, the metadata store and joystick assignments
- Game catalog
- SessionManager (per-request database session)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from gamedock.config import get_settings
from gamedock.db.session import get_session_dependency
from gamedock.drivers.base import EngineClient
from gamedock.drivers.docker import DockerEngineClient
from gamedock.host.mounts import MountTable
from gamedock.launch.builder import BuildOptions
from gamedock.launch.planner import LaunchPlanner
from gamedock.managers.session import SessionManager
from gamedock.resolvers.devices import DeviceAccessResolver
from gamedock.resolvers.display import DisplayConfigurator
from gamedock.resolvers.joysticks import JoystickAssignments
from gamedock.resolvers.volumes import VolumeResolver
from gamedock.stores.catalog import Catalog, YamlCatalog
from gamedock.stores.metadata import JsonFileMetadataStore, MetadataStore
from gamedock.stores.sessions import SqlSessionStore


@lru_cache
def get_engine_client() -> EngineClient:
    """Single engine client shared across requests."""
    return DockerEngineClient(get_settings().docker)


@lru_cache
def get_metadata_store() -> MetadataStore:
    return JsonFileMetadataStore(get_settings().volumes.metadata_dir)


def get_volume_resolver() -> VolumeResolver:
    settings = get_settings()
    return VolumeResolver(
        MountTable(settings.volumes.mounts_file, settings.volumes.mountinfo_file),
        get_metadata_store(),
        prefix=settings.volumes.prefix,
    )


def get_display_configurator() -> DisplayConfigurator:
    return DisplayConfigurator(get_settings().display)


def get_device_resolver() -> DeviceAccessResolver:
    settings = get_settings()
    return DeviceAccessResolver(
        settings.devices,
        owner=(settings.sessions.puid, settings.sessions.pgid),
    )


def get_joystick_assignments() -> JoystickAssignments:
    return JoystickAssignments(get_metadata_store())


def get_catalog() -> Catalog:
    settings = get_settings()
    return YamlCatalog(settings.catalog.path, settings.platforms)


def get_launch_planner() -> LaunchPlanner:
    settings = get_settings()
    return LaunchPlanner(
        get_volume_resolver(),
        get_display_configurator(),
        get_device_resolver(),
        options=BuildOptions(
            puid=settings.sessions.puid,
            pgid=settings.sessions.pgid,
            network_mode=settings.docker.network_mode,
        ),
        wait_for_display=settings.sessions.wait_for_display,
        display_timeout=settings.display.wait_timeout,
        joysticks=get_joystick_assignments(),
    )


def build_session_manager(db_session: AsyncSession, planner: LaunchPlanner | None = None) -> SessionManager:
    """SessionManager bound to one database session."""
    settings = get_settings()
    return SessionManager(
        get_engine_client(),
        SqlSessionStore(db_session),
        planner,
        container_name_prefix=settings.docker.container_name_prefix,
        instance_id=settings.gc.get_instance_id(),
    )


async def get_session_manager(
    session: Annotated[AsyncSession, Depends(get_session_dependency)],
    planner: Annotated[LaunchPlanner, Depends(get_launch_planner)],
) -> SessionManager:
    return build_session_manager(session, planner)


SessionManagerDep = Annotated[SessionManager, Depends(get_session_manager)]
CatalogDep = Annotated[Catalog, Depends(get_catalog)]
VolumeResolverDep = Annotated[VolumeResolver, Depends(get_volume_resolver)]
DisplayDep = Annotated[DisplayConfigurator, Depends(get_display_configurator)]
DevicesDep = Annotated[DeviceAccessResolver, Depends(get_device_resolver)]
JoysticksDep = Annotated[JoystickAssignments, Depends(get_joystick_assignments)]

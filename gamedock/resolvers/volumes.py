"""VolumeResolver - first-class volume detection.

A first-class volume's purpose is fixed by its backing name:

    <prefix>_core              -> /data
    <prefix>_roms              -> /roms
    <prefix>_cache             -> /cache
    <prefix>_installed_<sfx>   -> /installed/<sfx>

Missing volumes are warnings here. Whether a missing category is fatal is
decided by the launch builder for the platform being launched.
"""

from __future__ import annotations

import re

import structlog

from gamedock.errors import ValidationError
from gamedock.host.mounts import MountEntry, MountTable
from gamedock.models.launch import (
    VolumeCategory,
    VolumeReport,
    VolumeStatus,
    conventional_mount_path,
)
from gamedock.stores.metadata import MetadataStore

logger = structlog.get_logger()

METADATA_NAMESPACE = "volumes"
STORAGE_TYPES = ("ssd", "platter", "archive")

_SINGLE_CATEGORIES = (VolumeCategory.CORE, VolumeCategory.ROMS, VolumeCategory.CACHE)


def backing_name_for(prefix: str, category: VolumeCategory, suffix: str | None = None) -> str:
    """Conventional backing name of a category."""
    if category == VolumeCategory.INSTALLED:
        return f"{prefix}_installed_{suffix}"
    return f"{prefix}_{category.value}"


def parse_first_class_name(name: str, prefix: str) -> tuple[VolumeCategory, str | None] | None:
    """Classify a backing name, or None if it is not first-class."""
    for category in _SINGLE_CATEGORIES:
        if name == backing_name_for(prefix, category):
            return category, None
    match = re.fullmatch(rf"{re.escape(prefix)}_installed_(.+)", name)
    if match:
        return VolumeCategory.INSTALLED, match.group(1)
    return None


class VolumeResolver:
    """Detects first-class volumes in the live mount table."""

    def __init__(
        self,
        mount_table: MountTable,
        metadata_store: MetadataStore,
        *,
        prefix: str = "gamedock",
    ) -> None:
        self._mount_table = mount_table
        self._store = metadata_store
        self._prefix = prefix
        self._log = logger.bind(resolver="volumes")

    def resolve(self) -> VolumeReport:
        """Scan the mount table and report every category."""
        entries = [e for e in self._mount_table.read() if not e.is_system]
        metadata = self._store.load(METADATA_NAMESPACE)

        singles: dict[VolumeCategory, VolumeStatus] = {}
        installed: dict[str, VolumeStatus] = {}
        warnings: list[str] = []

        for entry in entries:
            if entry.volume_name is None:
                continue
            parsed = parse_first_class_name(entry.volume_name, self._prefix)
            if parsed is None:
                continue
            category, suffix = parsed
            if category == VolumeCategory.INSTALLED:
                if suffix in installed:
                    continue
                installed[suffix] = self._detected(entry, category, suffix, metadata)
            elif category not in singles:
                singles[category] = self._detected(entry, category, None, metadata)

        for category in _SINGLE_CATEGORIES:
            if category not in singles:
                name = backing_name_for(self._prefix, category)
                singles[category] = VolumeStatus(
                    category=category,
                    backing_name=name,
                    mount_path=conventional_mount_path(category),
                    detected=False,
                )
                warnings.append(
                    f"{category.value} volume '{name}' not detected "
                    f"(expected at {conventional_mount_path(category)})"
                )

        installed_list = [installed[k] for k in sorted(installed)]
        for status in [*(singles[c] for c in _SINGLE_CATEGORIES), *installed_list]:
            if status.detected and not status.conformant:
                warnings.append(
                    f"volume '{status.backing_name}' is mounted at {status.mount_path}, "
                    f"expected {status.expected_mount_path}"
                )

        report = VolumeReport(
            core=singles[VolumeCategory.CORE],
            roms=singles[VolumeCategory.ROMS],
            cache=singles[VolumeCategory.CACHE],
            installed=installed_list,
            warnings=warnings,
        )
        self._log.debug(
            "volumes.resolved",
            detected=sorted(report.detected_backing_names()),
            warnings=len(warnings),
        )
        return report

    def _detected(
        self,
        entry: MountEntry,
        category: VolumeCategory,
        suffix: str | None,
        metadata: dict,
    ) -> VolumeStatus:
        expected = conventional_mount_path(category, suffix)
        meta = metadata.get(entry.volume_name) or {}
        return VolumeStatus(
            category=category,
            backing_name=entry.volume_name,
            mount_path=entry.mount_path,
            detected=True,
            suffix=suffix,
            conformant=entry.mount_path == expected,
            storage_type=meta.get("storage_type"),
            friendly_name=meta.get("friendly_name"),
        )

    def set_metadata(
        self,
        backing_name: str,
        *,
        friendly_name: str | None = None,
        storage_type: str | None = None,
    ) -> dict:
        """Record a friendly name and/or storage type for a volume."""
        if parse_first_class_name(backing_name, self._prefix) is None:
            raise ValidationError(f"'{backing_name}' is not a first-class volume name")
        if storage_type is not None and storage_type not in STORAGE_TYPES:
            raise ValidationError(
                f"Invalid storage type '{storage_type}'",
                details={"allowed": list(STORAGE_TYPES)},
            )

        entry = self._store.update(
            METADATA_NAMESPACE,
            backing_name,
            {"friendly_name": friendly_name, "storage_type": storage_type},
        )
        self._log.info("volumes.metadata_updated", backing_name=backing_name, **entry)
        return entry

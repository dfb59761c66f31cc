"""Gamedock error taxonomy.

Every failure surfaced to a caller is a GamedockError subclass carrying a
stable ``code``, an HTTP status for the API layer, and a remediation hint
telling the user what to fix (which volume, which socket) instead of a raw
engine message.
"""

from __future__ import annotations

from typing import Any


class GamedockError(Exception):
    """Base error for all gamedock failures."""

    code: str = "internal_error"
    message: str = "Internal server error"
    status_code: int = 500
    remediation: str | None = None

    def __init__(
        self,
        message: str | None = None,
        *,
        remediation: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.__class__.message
        self.remediation = remediation or self.__class__.remediation
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self, request_id: str | None = None) -> dict[str, Any]:
        """Serialize to the API error envelope."""
        error: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.remediation:
            error["remediation"] = self.remediation
        if self.details:
            error["details"] = self.details
        if request_id:
            error["request_id"] = request_id
        return {"error": error}


class MissingVolumeError(GamedockError):
    """A storage category required by the platform was not detected."""

    code = "missing_volume"
    message = "Required storage volume not detected"
    status_code = 409

    def __init__(
        self,
        category: str,
        *,
        suffix: str | None = None,
        backing_name: str | None = None,
        mount_path: str | None = None,
    ) -> None:
        self.category = category
        self.suffix = suffix
        label = f"{category}/{suffix}" if suffix else category
        hint = f"Create the '{backing_name or label}' volume"
        if mount_path:
            hint += f" and mount it at {mount_path}"
        super().__init__(
            f"Required volume '{label}' is not mounted",
            remediation=hint,
            details={
                "category": category,
                "suffix": suffix,
                "backing_name": backing_name,
                "mount_path": mount_path,
            },
        )


class DeviceAccessError(GamedockError):
    """GPU, audio or input exposure could not be computed."""

    code = "device_access"
    message = "Device access could not be configured"
    status_code = 500
    remediation = "Check that the orchestrator can read /dev, /proc/bus/input and the audio socket"


class DisplayUnavailableError(GamedockError):
    """No usable display protocol and no headless path supplied."""

    code = "display_unavailable"
    message = "No Wayland or X11 display is available"
    status_code = 503
    remediation = "Start a desktop session or supply a streaming pipeline for headless launch"


class ResourceConflictError(GamedockError):
    """Two sessions contend for one exclusive resource."""

    code = "resource_conflict"
    message = "Resource is in use by another session"
    status_code = 409
    remediation = "Stop the session that is using this installation first"


class ContainerRuntimeError(GamedockError):
    """Opaque wrap of a container engine failure."""

    code = "container_runtime"
    message = "Container engine operation failed"
    status_code = 502
    remediation = "Check that the container engine is running and the runner image is installed"


class SessionTimeoutError(GamedockError):
    """Session did not leave the starting state in time."""

    code = "session_timeout"
    message = "Session did not start in time"
    status_code = 504
    remediation = "Inspect the container logs for the session and retry the launch"


class InvalidTransitionError(GamedockError):
    """Requested state transition is not allowed."""

    code = "invalid_transition"
    message = "Invalid session state transition"
    status_code = 409


class NotFoundError(GamedockError):
    """Requested resource does not exist."""

    code = "not_found"
    message = "Resource not found"
    status_code = 404


class ValidationError(GamedockError):
    """Request or configuration is invalid."""

    code = "validation_error"
    message = "Validation error"
    status_code = 400

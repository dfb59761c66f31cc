"""Session-level in-memory locks.

Used by:
- SessionManager (launch, stop, refresh)
- GC tasks (StuckSessionGC)

These locks only work within a single process. Cross-session exclusivity
(one writer per installation) uses a resource lock per exclusive key
together with the resource_key recorded on each session.
"""

from __future__ import annotations

import asyncio

# Key: session_id, Value: asyncio.Lock
_session_locks: dict[str, asyncio.Lock] = {}
# Key: exclusive resource key, Value: asyncio.Lock
_resource_locks: dict[str, asyncio.Lock] = {}
_locks_lock = asyncio.Lock()


async def get_session_lock(session_id: str) -> asyncio.Lock:
    """Get or create the lock for a session.

    Ensures no two callers mutate the same session concurrently
    (e.g. stop racing the orphan sweep).
    """
    async with _locks_lock:
        if session_id not in _session_locks:
            _session_locks[session_id] = asyncio.Lock()
        return _session_locks[session_id]


async def get_resource_lock(resource_key: str) -> asyncio.Lock:
    """Get or create the lock guarding the claim on an exclusive resource."""
    async with _locks_lock:
        if resource_key not in _resource_locks:
            _resource_locks[resource_key] = asyncio.Lock()
        return _resource_locks[resource_key]


async def cleanup_session_lock(session_id: str) -> None:
    """Drop the lock of a session that reached a terminal state."""
    async with _locks_lock:
        _session_locks.pop(session_id, None)


def get_lock_count() -> int:
    """Get current number of session locks (for testing/metrics)."""
    return len(_session_locks)

"""Unix socket probing and bounded waits."""

from __future__ import annotations

import asyncio
import os
import socket
import stat
from collections.abc import Callable


def is_socket(path: str) -> bool:
    """Whether ``path`` exists and is a unix socket."""
    try:
        return stat.S_ISSOCK(os.stat(path).st_mode)
    except OSError:
        return False


def socket_is_live(path: str, timeout: float = 0.5) -> bool:
    """Whether a server accepts connections on the unix socket at ``path``.

    A socket file left behind by a dead compositor exists but refuses
    connections; that counts as stale.
    """
    if not is_socket(path):
        return False
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.settimeout(timeout)
    try:
        sock.connect(path)
    except OSError:
        return False
    finally:
        sock.close()
    return True


async def poll_with_backoff(
    probe: Callable[[], bool],
    *,
    timeout: float,
    initial_interval: float = 0.1,
    max_interval: float = 2.0,
    backoff_factor: float = 2.0,
) -> bool:
    """Call ``probe`` until it returns True or ``timeout`` elapses.

    Intervals grow geometrically up to ``max_interval``. Returns the final
    probe result.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    interval = initial_interval

    while True:
        if await asyncio.to_thread(probe):
            return True
        remaining = deadline - loop.time()
        if remaining <= 0:
            return False
        await asyncio.sleep(min(interval, remaining))
        interval = min(interval * backoff_factor, max_interval)


"""Transport factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import NovaflowConfig, load_config
from .base import BaseTransport
from .inmemory import InMemoryTransport

_transport_instance: BaseTransport | None = None


def get_transport(
    backend: Optional[str] = None, config: Optional[NovaflowConfig] = None
) -> BaseTransport:
    """Factory function to get the configured change transport.

    The in-memory transport is shared per process so that publishers and
    subscribers in the same process see each other.
    """

    global _transport_instance
    config = config or load_config()
    backend = (
        backend
        or os.getenv("NOVAFLOW_TRANSPORT")
        or config.transport.backend
    ).lower()

    if backend == "inmemory":
        if not isinstance(_transport_instance, InMemoryTransport):
            _transport_instance = InMemoryTransport()
        return _transport_instance
    elif backend == "redis":
        from .redis import RedisTransport

        redis_conf = config.transport.redis
        return RedisTransport(
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
        )
    else:
        raise ValueError(f"Unsupported transport backend: {backend}")


__all__ = ["BaseTransport", "InMemoryTransport", "get_transport"]

"""
Capability interfaces for the services the monitor observes.

Any object with the right methods satisfies these protocols; nothing is
checked at runtime. ``ping`` and the gateway accessors may be plain or
``async`` methods.
"""

import inspect
from dataclasses import dataclass, asdict
from typing import Any, Awaitable, Dict, Protocol, Union


@dataclass
class EntityCounts:
    """Entity counts reported by a chat gateway."""
    guilds: int = 0
    users: int = 0
    channels: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class Pingable(Protocol):
    """A datastore or cache that can be pinged. Raises on failure."""

    def ping(self) -> Union[None, Awaitable[None]]:
        ...


class GatewaySnapshot(Protocol):
    """A chat gateway client exposing readiness, latency and entity counts."""

    def is_ready(self) -> Union[bool, Awaitable[bool]]:
        ...

    def latency(self) -> Union[float, Awaitable[float]]:
        """Round-trip latency in milliseconds."""
        ...

    def entity_counts(self) -> Union[EntityCounts, Awaitable[EntityCounts]]:
        ...


async def resolve(value: Any) -> Any:
    """Await ``value`` if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value

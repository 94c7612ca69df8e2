"""
Position sources for the location reporting loop.

A source is any async iterable of ``Coordinates``. Device integrations feed a
``QueuePositionSource``; the member runner uses ``simulated_walk``.
"""
import asyncio
import math
import random
from typing import AsyncIterator, Optional

from venue_tracker.models import Coordinates

METERS_PER_DEGREE_LAT = 111_320.0

_CLOSED = object()


class QueuePositionSource:
    """Positions pushed by a device watcher, consumed by the session."""

    def __init__(self, maxsize: int = 0):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    def put(self, position: Coordinates) -> None:
        self._queue.put_nowait(position)

    def close(self) -> None:
        """End the stream; the location loop exits after draining earlier positions."""
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> AsyncIterator[Coordinates]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Coordinates]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item


def offset(position: Coordinates, north_m: float, east_m: float) -> Coordinates:
    """Move ``position`` by a small distance in metres (flat-earth approximation)."""
    d_lat = north_m / METERS_PER_DEGREE_LAT
    d_lng = east_m / (METERS_PER_DEGREE_LAT * math.cos(math.radians(position.lat)))
    return Coordinates(lat=position.lat + d_lat, lng=position.lng + d_lng)


async def simulated_walk(
    start: Coordinates,
    step_m: float = 2.0,
    interval: float = 2.0,
    steps: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> AsyncIterator[Coordinates]:
    """
    Random walk around ``start``, one fix every ``interval`` seconds.

    Args:
        start: First position reported
        step_m: Distance moved between fixes
        interval: Seconds between fixes
        steps: Stop after this many fixes (endless when None)
        rng: Random source, for reproducible walks
    """
    rng = rng or random.Random()
    position = start
    count = 0
    while steps is None or count < steps:
        yield position
        count += 1
        await asyncio.sleep(interval)
        heading = rng.uniform(0, 2 * math.pi)
        position = offset(position, step_m * math.cos(heading), step_m * math.sin(heading))

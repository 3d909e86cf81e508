"""Neighborhood expansion around a geohash cell."""

from __future__ import annotations

from geodispatch import geohash
from geodispatch.config import SearchConfig

# (d_lat, d_lon) multipliers: center, N, S, E, W, NE, NW, SE, SW.
_OFFSETS: tuple[tuple[int, int], ...] = (
    (0, 0),
    (1, 0),
    (-1, 0),
    (0, 1),
    (0, -1),
    (1, 1),
    (1, -1),
    (-1, 1),
    (-1, -1),
)


def _wrap_longitude(longitude: float) -> float:
    if -180.0 <= longitude <= 180.0:
        return longitude
    return ((longitude + 180.0) % 360.0) - 180.0


def _clamp_latitude(latitude: float) -> float:
    return max(-90.0, min(90.0, latitude))


class NeighborhoodExpander:
    """Compute the 3x3 block of cells around a center geohash.

    The result is an ordered, duplicate-free tuple with the center key first,
    so truncating it to a store limit never drops the center. Near the poles
    several offsets fall in the same cell and the tuple gets shorter.
    """

    def __init__(self, config: SearchConfig | None = None) -> None:
        self._config = config or SearchConfig()

    def expand(self, center_key: str) -> tuple[str, ...]:
        if not center_key or len(center_key) < self._config.min_precision:
            return (center_key,)

        bounds, center = geohash.decode(center_key)
        precision = len(center_key)
        step = self._config.neighbor_step_degrees
        lat_step = step if step is not None else bounds.height
        lon_step = step if step is not None else bounds.width

        keys: dict[str, None] = {center_key: None}
        for d_lat, d_lon in _OFFSETS[1:]:
            latitude = _clamp_latitude(center.latitude + d_lat * lat_step)
            longitude = _wrap_longitude(center.longitude + d_lon * lon_step)
            keys.setdefault(geohash.encode(latitude, longitude, precision), None)
        return tuple(keys)


def expand(center_key: str, config: SearchConfig | None = None) -> tuple[str, ...]:
    """Return *center_key* plus the keys of its adjacent cells."""
    return NeighborhoodExpander(config).expand(center_key)

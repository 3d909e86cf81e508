"""Geohash encoding and decoding.

A geohash is built by repeatedly halving the longitude and latitude ranges,
longitude first, and emitting one bit per halving (1 for the upper half).
Every five bits become one base-32 symbol, so a key of length *p* names a
cell whose size depends only on *p*.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from geodispatch._constants import BASE32, BASE32_INDEX, DEFAULT_PRECISION
from geodispatch.exceptions import ValidationError

_BITS_PER_SYMBOL = 5


@dataclass(frozen=True, slots=True)
class GeoPoint:
    latitude: float
    longitude: float


@dataclass(frozen=True, slots=True)
class BoundingRect:
    """The rectangle a geohash represents (edges inclusive)."""

    lat_min: float
    lat_max: float
    lon_min: float
    lon_max: float

    @property
    def center(self) -> GeoPoint:
        return GeoPoint((self.lat_min + self.lat_max) / 2, (self.lon_min + self.lon_max) / 2)

    @property
    def height(self) -> float:
        """Latitude span in degrees."""
        return self.lat_max - self.lat_min

    @property
    def width(self) -> float:
        """Longitude span in degrees."""
        return self.lon_max - self.lon_min

    def contains(self, latitude: float, longitude: float) -> bool:
        return self.lat_min <= latitude <= self.lat_max and self.lon_min <= longitude <= self.lon_max


def validate_coordinates(latitude: float, longitude: float) -> None:
    """Raise :class:`ValidationError` unless the pair is a real position."""
    if isinstance(latitude, bool) or isinstance(longitude, bool):
        raise ValidationError("coordinates must be numbers")
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        raise ValidationError(f"coordinates must be finite, got ({latitude}, {longitude})")
    if not -90.0 <= latitude <= 90.0:
        raise ValidationError(f"latitude must be between -90 and 90, got {latitude}")
    if not -180.0 <= longitude <= 180.0:
        raise ValidationError(f"longitude must be between -180 and 180, got {longitude}")


def encode(latitude: float, longitude: float, precision: int = DEFAULT_PRECISION) -> str:
    """Encode a position as a geohash of *precision* symbols.

    Raises
    ------
    ValidationError
        If the coordinates are outside the valid range or *precision* < 1.
    """
    if precision < 1:
        raise ValidationError(f"precision must be >= 1, got {precision}")
    validate_coordinates(latitude, longitude)

    lat_lo, lat_hi = -90.0, 90.0
    lon_lo, lon_hi = -180.0, 180.0
    symbols: list[str] = []
    index = 0
    bit = 0
    even = True

    while len(symbols) < precision:
        if even:
            mid = (lon_lo + lon_hi) / 2
            if longitude >= mid:
                index = (index << 1) | 1
                lon_lo = mid
            else:
                index <<= 1
                lon_hi = mid
        else:
            mid = (lat_lo + lat_hi) / 2
            if latitude >= mid:
                index = (index << 1) | 1
                lat_lo = mid
            else:
                index <<= 1
                lat_hi = mid
        even = not even
        bit += 1
        if bit == _BITS_PER_SYMBOL:
            symbols.append(BASE32[index])
            bit = 0
            index = 0

    return "".join(symbols)


def decode_bounds(key: str) -> BoundingRect:
    """Return the rectangle covered by *key*.

    Raises
    ------
    ValidationError
        If *key* is empty or contains a symbol outside the geohash alphabet.
    """
    if not key:
        raise ValidationError("geohash must not be empty")

    lat_lo, lat_hi = -90.0, 90.0
    lon_lo, lon_hi = -180.0, 180.0
    even = True

    for char in key.lower():
        index = BASE32_INDEX.get(char)
        if index is None:
            raise ValidationError(f"invalid geohash symbol {char!r} in {key!r}")
        for shift in range(_BITS_PER_SYMBOL - 1, -1, -1):
            bit = (index >> shift) & 1
            if even:
                mid = (lon_lo + lon_hi) / 2
                if bit:
                    lon_lo = mid
                else:
                    lon_hi = mid
            else:
                mid = (lat_lo + lat_hi) / 2
                if bit:
                    lat_lo = mid
                else:
                    lat_hi = mid
            even = not even

    return BoundingRect(lat_min=lat_lo, lat_max=lat_hi, lon_min=lon_lo, lon_max=lon_hi)


def decode(key: str) -> tuple[BoundingRect, GeoPoint]:
    """Decode *key* into its bounding rectangle and center point."""
    bounds = decode_bounds(key)
    return bounds, bounds.center


def is_valid(key: str) -> bool:
    """Whether *key* is a non-empty string over the geohash alphabet."""
    return bool(key) and all(char in BASE32_INDEX for char in key.lower())

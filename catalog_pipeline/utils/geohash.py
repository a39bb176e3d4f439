"""Geohash encoding, cell geometry and neighbour lookup."""

from __future__ import annotations

import math

BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
_DECODE_MAP = {char: index for index, char in enumerate(BASE32)}

EARTH_RADIUS_KM = 6371.0088


class InvalidGeohashError(ValueError):
    """Raised when a geohash string contains characters outside the alphabet."""


def encode(latitude: float, longitude: float, precision: int = 7) -> str:
    """Encode a coordinate pair into a geohash of exactly ``precision`` chars.

    Bits alternate between longitude (even) and latitude (odd); each bit halves
    the remaining range, so a longer hash only ever extends a shorter one.
    """
    if precision < 1:
        raise ValueError(f"precision must be >= 1, got {precision}")
    if not -90.0 <= latitude <= 90.0:
        raise ValueError(f"latitude out of range: {latitude}")
    if not -180.0 <= longitude <= 180.0:
        raise ValueError(f"longitude out of range: {longitude}")

    lat_min, lat_max = -90.0, 90.0
    lon_min, lon_max = -180.0, 180.0
    chars: list[str] = []
    idx = 0
    bit = 0
    even_bit = True

    while len(chars) < precision:
        if even_bit:
            mid = (lon_min + lon_max) / 2
            if longitude >= mid:
                idx = (idx << 1) + 1
                lon_min = mid
            else:
                idx = idx << 1
                lon_max = mid
        else:
            mid = (lat_min + lat_max) / 2
            if latitude >= mid:
                idx = (idx << 1) + 1
                lat_min = mid
            else:
                idx = idx << 1
                lat_max = mid

        even_bit = not even_bit
        bit += 1
        if bit == 5:
            chars.append(BASE32[idx])
            bit = 0
            idx = 0

    return "".join(chars)


def decode_bbox(geohash: str) -> tuple[float, float, float, float]:
    """Return ``(lat_min, lat_max, lon_min, lon_max)`` of the cell."""
    if not geohash:
        raise InvalidGeohashError("geohash must not be empty")

    lat_min, lat_max = -90.0, 90.0
    lon_min, lon_max = -180.0, 180.0
    even_bit = True

    for char in geohash.lower():
        try:
            value = _DECODE_MAP[char]
        except KeyError:
            raise InvalidGeohashError(f"invalid geohash character {char!r}") from None
        for shift in range(4, -1, -1):
            bit_set = (value >> shift) & 1
            if even_bit:
                mid = (lon_min + lon_max) / 2
                if bit_set:
                    lon_min = mid
                else:
                    lon_max = mid
            else:
                mid = (lat_min + lat_max) / 2
                if bit_set:
                    lat_min = mid
                else:
                    lat_max = mid
            even_bit = not even_bit

    return lat_min, lat_max, lon_min, lon_max


def decode(geohash: str) -> tuple[float, float]:
    """Return the centre ``(lat, lon)`` of the cell."""
    lat_min, lat_max, lon_min, lon_max = decode_bbox(geohash)
    return (lat_min + lat_max) / 2, (lon_min + lon_max) / 2


def neighbors(geohash: str) -> set[str]:
    """Return the cell and its 8 surrounding cells at the same precision.

    Longitude wraps across the antimeridian. Rows beyond a pole do not exist
    and are left out, so polar cells yield fewer than nine entries.
    """
    lat_min, lat_max, lon_min, lon_max = decode_bbox(geohash)
    precision = len(geohash)
    lat_step = lat_max - lat_min
    lon_step = lon_max - lon_min
    centre_lat = (lat_min + lat_max) / 2
    centre_lon = (lon_min + lon_max) / 2

    cells = {geohash.lower()}
    for d_lat in (-1, 0, 1):
        lat = centre_lat + d_lat * lat_step
        if lat < -90.0 or lat > 90.0:
            continue
        for d_lon in (-1, 0, 1):
            lon = centre_lon + d_lon * lon_step
            if lon >= 180.0:
                lon -= 360.0
            elif lon < -180.0:
                lon += 360.0
            cells.add(encode(lat, lon, precision))
    return cells


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = phi2 - phi1
    d_lambda = math.radians(lon2 - lon1)
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))

"""Bounding-box reduction and planar/spherical helpers.

The reducer turns a GeoJSON geometry into the flat ``(min_lon, min_lat,
max_lon, max_lat)`` box the feature store keeps. Only ``Point`` and
``LineString`` are reduced; every other type yields ``None`` and the
feature is stored without spatial searchability.

Example:
    >>> reduce_bbox({"type": "LineString",
    ...              "coordinates": [[0, 0], [2, 1], [1, 3]]})
    (0.0, 0.0, 2.0, 3.0)
    >>> reduce_bbox({"type": "Polygon", "coordinates": []}) is None
    True
"""

from __future__ import annotations

import math
from typing import Any

from gis_viewer.core import errors
from gis_viewer.db import models as db_models

EARTH_RADIUS_M = 6_371_000.0
METERS_PER_DEGREE = 111_000.0


def _position(value: Any) -> tuple[float, float] | None:
    if not isinstance(value, list | tuple) or len(value) < 2:
        return None
    x, y = value[0], value[1]
    if isinstance(x, bool) or isinstance(y, bool):
        return None
    if not isinstance(x, int | float) or not isinstance(y, int | float):
        return None
    # json.loads accepts NaN and Infinity.
    if not (math.isfinite(x) and math.isfinite(y)):
        return None
    return float(x), float(y)


def reduce_bbox(geometry: dict[str, Any] | None) -> db_models.BBox | None:
    """Reduce a GeoJSON geometry to its axis-aligned bounding box.

    Args:
        geometry: GeoJSON geometry object with ``type`` and ``coordinates``.

    Returns:
        ``(min_lon, min_lat, max_lon, max_lat)`` for Point and LineString,
        ``None`` for any other type or for malformed coordinates.
    """
    if not isinstance(geometry, dict):
        return None

    geom_type = geometry.get("type")
    coordinates = geometry.get("coordinates")

    if geom_type == "Point":
        point = _position(coordinates)
        if point is None:
            return None
        return (point[0], point[1], point[0], point[1])

    if geom_type == "LineString":
        if not isinstance(coordinates, list) or not coordinates:
            return None
        vertices = [_position(vertex) for vertex in coordinates]
        if any(vertex is None for vertex in vertices):
            return None
        xs = [vertex[0] for vertex in vertices if vertex is not None]
        ys = [vertex[1] for vertex in vertices if vertex is not None]
        return (min(xs), min(ys), max(xs), max(ys))

    # Polygon, Multi* and GeometryCollection are not reduced.
    return None


def bbox_overlaps(
    feature_bbox: db_models.BBox | None,
    query_bbox: db_models.BBox,
) -> bool:
    """Inclusive rectangle overlap; touching edges count as a match."""
    if feature_bbox is None:
        return False
    f_min_lon, f_min_lat, f_max_lon, f_max_lat = feature_bbox
    q_min_lon, q_min_lat, q_max_lon, q_max_lat = query_bbox
    return (
        f_max_lon >= q_min_lon
        and f_min_lon <= q_max_lon
        and f_max_lat >= q_min_lat
        and f_min_lat <= q_max_lat
    )


def bbox_within(
    feature_bbox: db_models.BBox | None,
    window: db_models.BBox,
) -> bool:
    """Inclusive containment of the feature box inside ``window``."""
    if feature_bbox is None:
        return False
    f_min_lon, f_min_lat, f_max_lon, f_max_lat = feature_bbox
    w_min_lon, w_min_lat, w_max_lon, w_max_lat = window
    return (
        f_min_lon >= w_min_lon
        and f_max_lon <= w_max_lon
        and f_min_lat >= w_min_lat
        and f_max_lat <= w_max_lat
    )


def parse_bbox(value: str) -> db_models.BBox:
    """Parse ``"minLon,minLat,maxLon,maxLat"`` into a bbox tuple.

    Raises:
        ValidationError: If there are not exactly four finite numbers.
    """
    parts = value.split(",")
    if len(parts) != 4:
        raise errors.ValidationError(
            "bbox must be minLon,minLat,maxLon,maxLat"
        )
    try:
        numbers = [float(part) for part in parts]
    except ValueError as exc:
        raise errors.ValidationError(
            "bbox must be minLon,minLat,maxLon,maxLat"
        ) from exc
    if not all(math.isfinite(number) for number in numbers):
        raise errors.ValidationError("bbox values must be finite")
    return (numbers[0], numbers[1], numbers[2], numbers[3])


def haversine_distance(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
) -> float:
    """Great-circle distance in metres between two lat/lon points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def radius_window(lat: float, lon: float, radius_m: float) -> db_models.BBox:
    """Degree-delta window around a centre (flat-earth, short radii only).

    Latitude spans ``radius / 111000`` degrees; longitude is widened by
    ``1 / cos(lat)`` and covers the whole range where that blows up.
    """
    lat_delta = radius_m / METERS_PER_DEGREE
    cos_lat = math.cos(math.radians(lat))
    if cos_lat < 1e-9:
        lon_delta = 360.0
    else:
        lon_delta = radius_m / (METERS_PER_DEGREE * cos_lat)
    return (lon - lon_delta, lat - lat_delta, lon + lon_delta, lat + lat_delta)

"""Stored feature to GeoJSON projection.

Only bounding boxes are stored, so reconstruction is lossy: a Point comes
back exactly as ``[min_lon, min_lat]``, every other geometry type comes back
as the single bbox-centre position while keeping its stored ``type``. A
feature without a bbox has a ``null`` geometry.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable

    from gis_viewer.db import models as db_models


def reconstruct_position(feature: db_models.Feature) -> list[float] | None:
    if feature.bbox is None:
        return None
    min_lon, min_lat, max_lon, max_lat = feature.bbox
    if feature.geometry_type == "Point":
        return [min_lon, min_lat]
    return [(min_lon + max_lon) / 2, (min_lat + max_lat) / 2]


def reconstruct_geometry(feature: db_models.Feature) -> dict[str, Any] | None:
    position = reconstruct_position(feature)
    if position is None:
        return None
    return {"type": feature.geometry_type, "coordinates": position}


def to_geojson_feature(
    feature: db_models.Feature,
    extra_properties: dict[str, Any] | None = None,
) -> dict[str, Any]:
    properties = feature.properties
    if extra_properties:
        properties = {**properties, **extra_properties}
    return {
        "type": "Feature",
        "id": feature.id,
        "geometry": reconstruct_geometry(feature),
        "properties": properties,
    }


def to_feature_collection(
    features: Iterable[db_models.Feature],
) -> dict[str, Any]:
    return {
        "type": "FeatureCollection",
        "features": [to_geojson_feature(feature) for feature in features],
    }

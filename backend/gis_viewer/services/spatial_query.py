"""Bounding-box and radius queries over the feature store.

Example:
    Features of a dataset overlapping a box:
        >>> collection = query_map_data(
        ...     repos.features, "dataset-1", (139.0, 35.0, 140.0, 36.0), 2000
        ... )
        >>> [f["id"] for f in collection["features"]]
        ['feature-…']
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from gis_viewer.core import errors
from gis_viewer.db import filters as db_filters
from gis_viewer.services import geometry, projection

if TYPE_CHECKING:
    from gis_viewer.db import database
    from gis_viewer.db import models as db_models


def resolve_query_bbox(
    bbox: str | None,
    min_lon: float | None,
    min_lat: float | None,
    max_lon: float | None,
    max_lat: float | None,
) -> db_models.BBox | None:
    """Pick the query box from either request representation.

    The delimited ``bbox`` string wins when both are given. The four
    separate values must be given together or not at all.

    Raises:
        ValidationError: If the string is malformed or only some of the
            separate values are present.
    """
    if bbox:
        return geometry.parse_bbox(bbox)

    parts = (min_lon, min_lat, max_lon, max_lat)
    if all(part is None for part in parts):
        return None
    if any(part is None for part in parts):
        raise errors.ValidationError(
            "minLon, minLat, maxLon and maxLat must be given together"
        )
    return (
        float(min_lon),  # type: ignore[arg-type]
        float(min_lat),  # type: ignore[arg-type]
        float(max_lon),  # type: ignore[arg-type]
        float(max_lat),  # type: ignore[arg-type]
    )


def query_map_data(
    features: database.FeatureRepositoryProtocol,
    dataset_id: str,
    bbox: db_models.BBox | None,
    limit: int,
) -> dict[str, Any]:
    """Return a FeatureCollection of the dataset's features in ``bbox``.

    With no box every feature is a candidate, including those without a
    bbox. With a box only features whose bbox overlaps it (inclusive) are
    returned, so features with a null bbox are never included.

    Args:
        features: Feature store.
        dataset_id: Dataset to scan.
        bbox: Query box or None for an unfiltered scan.
        limit: Maximum number of features.

    Returns:
        GeoJSON FeatureCollection with degraded geometries.
    """
    feature_filter = db_filters.FeatureFilter(bbox=bbox) if bbox else None
    rows = features.scan(dataset_id, feature_filter, limit)
    return projection.to_feature_collection(rows)


def query_nearby(
    features: database.FeatureRepositoryProtocol,
    dataset_id: str,
    lat: float,
    lon: float,
    radius_m: float,
    candidate_limit: int,
) -> dict[str, Any]:
    """Return features within ``radius_m`` metres of ``(lat, lon)``.

    Candidates are first narrowed to features contained in the degree
    window from ``geometry.radius_window``, then kept only if the Haversine
    distance to their reconstructed position is within the radius. Each
    result carries ``_distance`` (rounded metres) in its properties and the
    collection is sorted by it.

    Raises:
        ValidationError: If ``radius_m`` is not positive.
    """
    if radius_m <= 0:
        raise errors.ValidationError("radius must be greater than 0")

    window = geometry.radius_window(lat, lon, radius_m)
    candidates = features.scan(
        dataset_id,
        db_filters.FeatureFilter(within=window),
        candidate_limit,
    )

    matches: list[tuple[float, db_models.Feature]] = []
    for feature in candidates:
        position = projection.reconstruct_position(feature)
        if position is None:
            continue
        distance = geometry.haversine_distance(
            lat, lon, position[1], position[0]
        )
        if distance <= radius_m:
            matches.append((distance, feature))

    matches.sort(key=lambda match: match[0])
    return {
        "type": "FeatureCollection",
        "features": [
            projection.to_geojson_feature(
                feature, {"_distance": round(distance)}
            )
            for distance, feature in matches
        ],
    }


def get_feature_detail(
    features: database.FeatureRepositoryProtocol,
    feature_id: str,
) -> dict[str, Any]:
    """Single feature as ``{id, datasetId, geometry, properties}``.

    Raises:
        NotFoundError: If the feature does not exist.
    """
    feature = features.get(feature_id)
    if feature is None:
        raise errors.NotFoundError("Feature not found")
    return {
        "id": feature.id,
        "datasetId": feature.dataset_id,
        "geometry": projection.reconstruct_geometry(feature),
        "properties": feature.properties,
    }

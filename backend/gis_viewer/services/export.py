"""Dataset exports: GeoJSON, CSV and summary statistics.

Exports read the current feature store contents, so they carry the same
degraded geometries as map queries.
"""

from __future__ import annotations

import collections
import csv
import io
from typing import TYPE_CHECKING, Any

from gis_viewer.services import projection

if TYPE_CHECKING:
    from gis_viewer.db import database
    from gis_viewer.db import models as db_models

CSV_BASE_COLUMNS = ("id", "longitude", "latitude", "geometry_type")


def export_geojson(
    features: database.FeatureRepositoryProtocol,
    dataset_id: str,
) -> dict[str, Any]:
    return projection.to_feature_collection(features.scan(dataset_id))


def _csv_value(value: Any) -> Any:
    return "" if value is None else value


def export_csv(
    features: database.FeatureRepositoryProtocol,
    dataset_id: str,
) -> str | None:
    """Render a dataset as CSV, or None if it has no features.

    Columns are ``id, longitude, latitude, geometry_type`` followed by the
    union of property keys in first-seen order. Coordinates are the
    reconstructed position.
    """
    rows = list(features.scan(dataset_id))
    if not rows:
        return None

    property_keys: dict[str, None] = {}
    loaded = []
    for feature in rows:
        properties = feature.properties
        loaded.append((feature, properties))
        for key in properties:
            property_keys.setdefault(key, None)

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow([*CSV_BASE_COLUMNS, *property_keys])
    for feature, properties in loaded:
        position = projection.reconstruct_position(feature) or [None, None]
        writer.writerow(
            [
                feature.id,
                _csv_value(position[0]),
                _csv_value(position[1]),
                feature.geometry_type,
                *(_csv_value(properties.get(key)) for key in property_keys),
            ]
        )
    return buffer.getvalue()


def summarize(
    dataset: db_models.Dataset,
    features: database.FeatureRepositoryProtocol,
    creator_name: str | None,
) -> dict[str, Any]:
    """Geometry type distribution and overall extent of a dataset.

    The extent only covers features that have a bbox; it is None when none
    do.
    """
    type_counts: collections.Counter[str] = collections.Counter()
    extent: list[float] | None = None
    for feature in features.scan(dataset.id):
        type_counts[feature.geometry_type] += 1
        if feature.bbox is None:
            continue
        if extent is None:
            extent = list(feature.bbox)
        else:
            extent = [
                min(extent[0], feature.bbox[0]),
                min(extent[1], feature.bbox[1]),
                max(extent[2], feature.bbox[2]),
                max(extent[3], feature.bbox[3]),
            ]

    return {
        "dataset": {
            "id": dataset.id,
            "name": dataset.name,
            "type": dataset.type,
            "recordCount": dataset.record_count,
            "status": dataset.status,
            "createdBy": creator_name,
            "createdAt": dataset.created_at.isoformat(),
        },
        "statistics": {
            "geometryTypes": [
                {"type": geom_type, "count": count}
                for geom_type, count in type_counts.items()
            ],
            "boundingBox": (
                {
                    "minLon": extent[0],
                    "minLat": extent[1],
                    "maxLon": extent[2],
                    "maxLat": extent[3],
                }
                if extent is not None
                else None
            ),
        },
    }

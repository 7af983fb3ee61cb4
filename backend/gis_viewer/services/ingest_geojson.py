"""Dataset upload ingestion.

This module stores an uploaded file and, for GeoJSON uploads, extracts its
features into the feature store. The raw bytes always go to the blob store
first, so a file that fails to parse is still preserved.

Ingestion rules:
    - ``record_count`` is the number of features in the payload, even when
      only the first ``ingest_feature_limit`` features are stored.
    - The schema is inferred from the first feature's properties only.
    - Each stored feature gets its bbox from ``geometry.reduce_bbox``; only
      Point and LineString are reduced.
    - A payload that is not JSON, or not a FeatureCollection, still creates
      the dataset with ``record_count = 0``. The failure is logged and
      reported in ``IngestReport.parse_error`` instead of failing the upload.
    - CSV and Shapefile uploads are stored as blobs without extraction.

Example:
    >>> dataset, report = ingest_dataset(
    ...     repos,
    ...     UploadedFile("points.geojson", payload, "application/geo+json"),
    ...     name="points",
    ...     dataset_type="geojson",
    ...     created_by="user-1",
    ...     feature_limit=1000,
    ... )
    >>> report.truncated
    False
"""

from __future__ import annotations

import dataclasses
import json
import logging
import pathlib
from typing import TYPE_CHECKING, Any, NamedTuple

from gis_viewer.core import errors
from gis_viewer.db import models as db_models
from gis_viewer.services import geometry

if TYPE_CHECKING:
    from gis_viewer.db import database

logger = logging.getLogger(__name__)


class UploadedFile(NamedTuple):
    filename: str
    data: bytes
    content_type: str | None = None


@dataclasses.dataclass
class IngestReport:
    """Partial-success summary returned with every upload.

    Attributes:
        features_parsed: Features found in the payload.
        features_stored: Rows written to the feature store.
        features_skipped: Payload entries within the cap that had no
            usable geometry object.
        truncated: Whether the feature cap dropped features.
        parse_error: Why extraction did not run, if it did not.
    """

    features_parsed: int = 0
    features_stored: int = 0
    features_skipped: int = 0
    truncated: bool = False
    parse_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "featuresParsed": self.features_parsed,
            "featuresStored": self.features_stored,
            "featuresSkipped": self.features_skipped,
            "truncated": self.truncated,
            "parseError": self.parse_error,
        }


def json_type_name(value: Any) -> str:
    """Type name of a JSON value as a browser would report it."""
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int | float):
        return "number"
    if isinstance(value, str):
        return "string"
    return "object"


def infer_schema(first_properties: dict[str, Any]) -> dict[str, str]:
    return {key: json_type_name(value) for key, value in first_properties.items()}


def build_feature(
    dataset_id: str,
    geometry_obj: dict[str, Any],
    properties: dict[str, Any] | None,
) -> db_models.Feature:
    """Create a feature row from a GeoJSON geometry and properties."""
    return db_models.Feature(
        id=db_models.new_id("feature"),
        dataset_id=dataset_id,
        geometry_type=geometry_obj["type"],
        bbox=geometry.reduce_bbox(geometry_obj),
        properties_json=db_models.dump_properties(properties or {}),
    )


def _usable_geometry(entry: Any) -> dict[str, Any] | None:
    if not isinstance(entry, dict):
        return None
    geometry_obj = entry.get("geometry")
    if (
        not isinstance(geometry_obj, dict)
        or geometry_obj.get("type") not in db_models.GEOMETRY_TYPES
    ):
        return None
    return geometry_obj


def _parse_feature_collection(data: bytes) -> list[Any]:
    """Decode a FeatureCollection and return its raw feature entries.

    Raises:
        ValueError: If the payload is not JSON or not a FeatureCollection
            with a ``features`` list.
    """
    document = json.loads(data.decode("utf-8-sig"))
    if not isinstance(document, dict) or document.get("type") != (
        "FeatureCollection"
    ):
        raise ValueError("payload is not a GeoJSON FeatureCollection")
    entries = document.get("features")
    if not isinstance(entries, list):
        raise ValueError("FeatureCollection has no features list")
    return entries


def extract_features(
    dataset_id: str,
    data: bytes,
    feature_limit: int,
) -> tuple[list[db_models.Feature], dict[str, str] | None, IngestReport]:
    """Parse a GeoJSON payload into feature rows.

    Args:
        dataset_id: Owning dataset id for the rows.
        data: Raw uploaded bytes.
        feature_limit: Maximum number of features to keep.

    Returns:
        Tuple of (features, schema, report). On a parse failure the feature
        list is empty, the schema is None and ``report.parse_error`` is set.
    """
    report = IngestReport()
    try:
        entries = _parse_feature_collection(data)
    except ValueError as exc:
        # UnicodeDecodeError and JSONDecodeError are ValueError subclasses.
        logger.warning("GeoJSON parse error for %s: %s", dataset_id, exc)
        report.parse_error = str(exc)
        return [], None, report

    report.features_parsed = len(entries)
    report.truncated = len(entries) > feature_limit

    schema: dict[str, str] | None = None
    if entries:
        first = entries[0] if isinstance(entries[0], dict) else {}
        first_properties = first.get("properties") or {}
        if isinstance(first_properties, dict):
            schema = infer_schema(first_properties)

    features: list[db_models.Feature] = []
    for entry in entries[:feature_limit]:
        geometry_obj = _usable_geometry(entry)
        if geometry_obj is None:
            report.features_skipped += 1
            continue
        properties = entry.get("properties")
        features.append(
            build_feature(
                dataset_id,
                geometry_obj,
                properties if isinstance(properties, dict) else None,
            )
        )

    return features, schema, report


def ingest_dataset(
    repos: database.Repositories,
    upload: UploadedFile,
    name: str,
    dataset_type: db_models.DatasetType,
    created_by: str,
    feature_limit: int,
) -> tuple[db_models.Dataset, IngestReport]:
    """Store an upload and register it as a dataset.

    Args:
        repos: Repositories bundle holding the blob, feature and dataset
            stores.
        upload: The uploaded file.
        name: Dataset display name.
        dataset_type: Declared type ("geojson", "csv", "shp").
        created_by: Id of the uploading user.
        feature_limit: Maximum features stored from a GeoJSON payload.

    Returns:
        Tuple of (dataset, report).

    Raises:
        ValidationError: If ``dataset_type`` is not supported.
        StorageError: If the blob store or a repository is unavailable.
    """
    if dataset_type not in db_models.DATASET_TYPES:
        raise errors.ValidationError(
            "type must be one of geojson, csv, shp"
        )

    dataset_id = db_models.new_id("dataset")
    filename = pathlib.PurePath(upload.filename or "").name
    if filename in ("", ".", ".."):
        filename = "upload"
    storage_key = f"datasets/{dataset_id}/{filename}"
    repos.blobs.put(storage_key, upload.data, upload.content_type)

    record_count = 0
    schema: dict[str, str] | None = None
    report = IngestReport()

    if dataset_type == "geojson":
        features, schema, report = extract_features(
            dataset_id, upload.data, feature_limit
        )
        record_count = report.features_parsed
        report.features_stored = repos.features.add_many(features)

    dataset = repos.datasets.add(
        db_models.Dataset(
            id=dataset_id,
            name=name,
            type=dataset_type,
            record_count=record_count,
            storage_key=storage_key,
            schema=schema,
            status="active",
            created_by=created_by,
        )
    )
    logger.info(
        "Ingested dataset %s (%s): %d parsed, %d stored, truncated=%s",
        dataset_id,
        dataset_type,
        report.features_parsed,
        report.features_stored,
        report.truncated,
    )
    return dataset, report

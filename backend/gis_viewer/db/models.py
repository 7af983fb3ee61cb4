"""Data models for datasets, features, users and layer styles.

This module defines the records the repositories persist. A Feature keeps
only the bounding box of its geometry, never the geometry itself, so any
non-Point feature read back from storage is reduced to a single point (see
``gis_viewer.services.projection``).

Example:
    Creating a Point feature:
        >>> from gis_viewer.db.models import Feature
        >>> feature = Feature(
        ...     id="feature-1",
        ...     dataset_id="dataset-1",
        ...     geometry_type="Point",
        ...     bbox=(139.7671, 35.6812, 139.7671, 35.6812),
        ...     properties_json='{"name":"東京駅"}',
        ... )
"""

from __future__ import annotations

import dataclasses
import datetime
import json
import uuid
from typing import Any, Literal

BBox = tuple[float, float, float, float]
DatasetType = Literal["geojson", "csv", "shp"]
DatasetStatus = Literal["active", "inactive", "processing"]
GeometryType = Literal[
    "Point",
    "LineString",
    "Polygon",
    "MultiPoint",
    "MultiLineString",
    "MultiPolygon",
]
UserRole = Literal["admin", "editor", "viewer"]

DATASET_TYPES: tuple[str, ...] = ("geojson", "csv", "shp")
GEOMETRY_TYPES: tuple[str, ...] = (
    "Point",
    "LineString",
    "Polygon",
    "MultiPoint",
    "MultiLineString",
    "MultiPolygon",
)
USER_ROLES: tuple[str, ...] = ("admin", "editor", "viewer")


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4()}"


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(tz=datetime.UTC)


def dump_properties(properties: dict[str, Any]) -> str:
    """Serialize properties in the compact form the text filters match on."""
    return json.dumps(properties, ensure_ascii=False, separators=(",", ":"))


@dataclasses.dataclass
class Dataset:
    """An uploaded dataset and its ingestion metadata.

    Attributes:
        id: Unique identifier (``dataset-<uuid>``).
        name: Human-readable dataset name.
        type: Declared upload type ("geojson", "csv", "shp").
        record_count: Feature count of the uploaded payload, adjusted by
            single-feature creates and deletes.
        storage_key: Blob store key of the raw upload, if any.
        schema: Property name to JSON type name, inferred from the first
            feature only.
        status: Lifecycle status.
        created_by: Id of the uploading user.
    """

    id: str
    name: str
    type: DatasetType
    record_count: int
    storage_key: str | None
    schema: dict[str, str] | None
    status: DatasetStatus
    created_by: str
    created_at: datetime.datetime = dataclasses.field(default_factory=utcnow)
    updated_at: datetime.datetime = dataclasses.field(default_factory=utcnow)


@dataclasses.dataclass
class Feature:
    """A stored feature: geometry type, bounding box and raw properties.

    ``bbox`` is ``(min_lon, min_lat, max_lon, max_lat)`` or ``None`` as a
    unit. ``None`` means the feature is not reachable by any spatial
    predicate.
    """

    id: str
    dataset_id: str
    geometry_type: GeometryType
    bbox: BBox | None
    properties_json: str
    created_at: datetime.datetime = dataclasses.field(default_factory=utcnow)

    @property
    def properties(self) -> dict[str, Any]:
        loaded = json.loads(self.properties_json)
        return loaded if isinstance(loaded, dict) else {}


@dataclasses.dataclass
class User:
    id: str
    email: str
    name: str
    role: UserRole
    password_hash: str
    created_at: datetime.datetime = dataclasses.field(default_factory=utcnow)
    updated_at: datetime.datetime = dataclasses.field(default_factory=utcnow)

    def public(self) -> dict[str, Any]:
        """User fields safe to return from the API."""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "created_at": self.created_at.isoformat(),
        }


@dataclasses.dataclass
class LayerStyle:
    """An opaque MapLibre style document attached to a dataset."""

    id: str
    dataset_id: str
    name: str
    style: dict[str, Any]
    is_default: bool
    created_by: str
    created_at: datetime.datetime = dataclasses.field(default_factory=utcnow)
    updated_at: datetime.datetime = dataclasses.field(default_factory=utcnow)

"""Single-feature create, update and delete.

Every write recomputes the bbox with ``services.geometry.reduce_bbox`` and
adjusts the owning dataset's ``record_count`` in one storage operation.
"""

import logging
from typing import Any

import fastapi
import pydantic

from gis_viewer.api import deps, envelope
from gis_viewer.core import errors
from gis_viewer.db import database
from gis_viewer.db import models as db_models
from gis_viewer.services import geometry, ingest_geojson

logger = logging.getLogger(__name__)

router = fastapi.APIRouter(
    prefix="/api/features",
    tags=["features"],
    dependencies=[fastapi.Depends(deps.require_role("admin", "editor"))],
)


class FeatureCreate(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(populate_by_name=True)

    dataset_id: str = pydantic.Field(alias="datasetId", min_length=1)
    geometry: dict[str, Any]
    properties: dict[str, Any]


class FeatureUpdate(pydantic.BaseModel):
    geometry: dict[str, Any] | None = None
    properties: dict[str, Any] | None = None


def _checked_geometry(geometry_obj: dict[str, Any]) -> dict[str, Any]:
    """Reject geometries whose type cannot be stored.

    Raises:
        ValidationError: If ``type`` is not a supported GeoJSON geometry.
    """
    if geometry_obj.get("type") not in db_models.GEOMETRY_TYPES:
        raise errors.ValidationError(
            "geometry.type must be one of " + ", ".join(db_models.GEOMETRY_TYPES)
        )
    return geometry_obj


@router.post("", status_code=201)
async def create_feature(
    body: FeatureCreate,
    user: deps.TokenUser = fastapi.Depends(deps.get_current_user),  # noqa: B008
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    """Add a feature to a dataset and bump its record count.

    Raises:
        ValidationError: If the geometry type is unsupported.
        NotFoundError: If the dataset does not exist.
    """
    geometry_obj = _checked_geometry(body.geometry)
    if repos.datasets.get(body.dataset_id) is None:
        raise errors.NotFoundError("Dataset not found")

    feature = repos.features.add(
        ingest_geojson.build_feature(body.dataset_id, geometry_obj, body.properties)
    )
    repos.datasets.adjust_record_count(body.dataset_id, 1)

    logger.info(
        "User %s created feature %s (%s) in dataset %s",
        user.user_id,
        feature.id,
        feature.geometry_type,
        body.dataset_id,
    )
    return envelope.success(
        {
            "id": feature.id,
            "datasetId": body.dataset_id,
            "geometry": geometry_obj,
            "properties": body.properties,
        }
    )


@router.put("/{feature_id}")
async def update_feature(
    feature_id: str,
    body: FeatureUpdate,
    user: deps.TokenUser = fastapi.Depends(deps.get_current_user),  # noqa: B008
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    """Replace a feature's geometry and/or properties.

    Raises:
        NotFoundError: If the feature does not exist.
        ValidationError: If the body carries nothing to update or the
            geometry type is unsupported.
    """
    feature = repos.features.get(feature_id)
    if feature is None:
        raise errors.NotFoundError("Feature not found")
    if body.geometry is None and body.properties is None:
        raise errors.ValidationError("Nothing to update")

    updated_fields = []
    if body.geometry is not None:
        geometry_obj = _checked_geometry(body.geometry)
        feature.geometry_type = geometry_obj["type"]
        feature.bbox = geometry.reduce_bbox(geometry_obj)
        updated_fields.append("geometry")
    if body.properties is not None:
        feature.properties_json = db_models.dump_properties(body.properties)
        updated_fields.append("properties")

    repos.features.update(feature)
    logger.info(
        "User %s updated %s of feature %s",
        user.user_id,
        " and ".join(updated_fields),
        feature_id,
    )
    return envelope.success({"id": feature_id, "updated": True})


@router.delete("/{feature_id}")
async def delete_feature(
    feature_id: str,
    user: deps.TokenUser = fastapi.Depends(deps.get_current_user),  # noqa: B008
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    feature = repos.features.delete(feature_id)
    try:
        repos.datasets.adjust_record_count(feature.dataset_id, -1)
    except errors.NotFoundError:
        logger.warning(
            "Deleted feature %s of missing dataset %s",
            feature_id,
            feature.dataset_id,
        )
    logger.info(
        "User %s deleted feature %s from dataset %s",
        user.user_id,
        feature_id,
        feature.dataset_id,
    )
    return envelope.success({"deleted": True})

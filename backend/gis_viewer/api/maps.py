"""Map data endpoints: bbox query, radius search and feature detail.

Example:
    >>> client.get(
    ...     "/api/map/data",
    ...     params={"datasetId": "dataset-tokyo-001", "bbox": "139,35,140,36"},
    ...     headers=auth_headers,
    ... ).json()["data"]["type"]
    'FeatureCollection'
"""

import fastapi

from gis_viewer.api import deps, envelope
from gis_viewer.core import config
from gis_viewer.db import database
from gis_viewer.services import spatial_query

router = fastapi.APIRouter(
    prefix="/api/map",
    tags=["map"],
    dependencies=[fastapi.Depends(deps.get_current_user)],
)


@router.get("/data")
async def map_data(
    dataset_id: str = fastapi.Query(..., alias="datasetId", min_length=1),
    bbox: str | None = fastapi.Query(None),
    min_lon: float | None = fastapi.Query(None, alias="minLon"),
    min_lat: float | None = fastapi.Query(None, alias="minLat"),
    max_lon: float | None = fastapi.Query(None, alias="maxLon"),
    max_lat: float | None = fastapi.Query(None, alias="maxLat"),
    limit: int | None = fastapi.Query(None, ge=1),
    zoom: float | None = fastapi.Query(None),
    settings: config.Settings = fastapi.Depends(deps.get_settings),  # noqa: B008
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    """Features of a dataset overlapping the requested box.

    ``zoom`` is accepted for client compatibility and has no effect.
    """
    query_bbox = spatial_query.resolve_query_bbox(
        bbox, min_lon, min_lat, max_lon, max_lat
    )
    collection = spatial_query.query_map_data(
        repos.features,
        dataset_id,
        query_bbox,
        limit or settings.map_default_limit,
    )
    return envelope.success(collection)


@router.get("/nearby")
async def nearby(
    dataset_id: str = fastapi.Query(..., alias="datasetId", min_length=1),
    lat: float = fastapi.Query(..., ge=-90, le=90),
    lon: float = fastapi.Query(..., ge=-180, le=180),
    radius: float = fastapi.Query(1000),
    settings: config.Settings = fastapi.Depends(deps.get_settings),  # noqa: B008
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    collection = spatial_query.query_nearby(
        repos.features,
        dataset_id,
        lat,
        lon,
        radius,
        settings.nearby_candidate_limit,
    )
    return envelope.success(collection)


@router.get("/features/{feature_id}")
async def feature_detail(
    feature_id: str,
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    return envelope.success(
        spatial_query.get_feature_detail(repos.features, feature_id)
    )

"""Attribute search endpoints."""

import fastapi

from gis_viewer.api import deps, envelope
from gis_viewer.core import config
from gis_viewer.db import database
from gis_viewer.services import attribute_search

router = fastapi.APIRouter(
    prefix="/api/search",
    tags=["search"],
    dependencies=[fastapi.Depends(deps.get_current_user)],
)


@router.get("")
async def search(
    dataset_id: str = fastapi.Query(..., alias="datasetId", min_length=1),
    q: str | None = fastapi.Query(None),
    category: str | None = fastapi.Query(None),
    min_score: int | None = fastapi.Query(None, alias="minScore"),
    max_score: int | None = fastapi.Query(None, alias="maxScore"),
    fts: bool = fastapi.Query(False),
    settings: config.Settings = fastapi.Depends(deps.get_settings),  # noqa: B008
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    """Keyword, category and score search.

    ``fts=true`` switches ``q`` to whole-token matching when full-text
    search is enabled in settings; otherwise ``q`` is a substring match.
    """
    collection = attribute_search.search_features(
        repos.features,
        dataset_id,
        settings.search_limit,
        q=q,
        category=category,
        min_score=min_score,
        max_score=max_score,
        full_text=fts and settings.search_fts_enabled,
    )
    return envelope.success(collection)


@router.get("/advanced")
async def advanced_search(
    dataset_id: str = fastapi.Query(..., alias="datasetId", min_length=1),
    filters: str | None = fastapi.Query(None),
    settings: config.Settings = fastapi.Depends(deps.get_settings),  # noqa: B008
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    collection = attribute_search.advanced_search(
        repos.features,
        dataset_id,
        filters,
        settings.search_limit,
    )
    return envelope.success(collection)

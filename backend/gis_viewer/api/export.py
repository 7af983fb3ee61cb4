"""Dataset export endpoints.

``/geojson`` and ``/csv`` return the raw document as a download; only
``/summary`` and errors use the JSON envelope.
"""

import json
import urllib.parse

import fastapi
from fastapi import responses

from gis_viewer.api import deps, envelope
from gis_viewer.core import errors
from gis_viewer.db import database
from gis_viewer.db import models as db_models
from gis_viewer.services import export

router = fastapi.APIRouter(
    prefix="/api/export",
    tags=["export"],
    dependencies=[fastapi.Depends(deps.get_current_user)],
)


def _attachment(filename: str) -> dict[str, str]:
    """Content-Disposition header that survives non-ASCII dataset names."""
    fallback = filename.encode("ascii", "ignore").decode("ascii").strip()
    fallback = fallback.replace('"', "") or "dataset"
    quoted = urllib.parse.quote(filename, safe="")
    return {
        "Content-Disposition": (
            f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quoted}"
        )
    }


def _dataset_or_404(
    repos: database.Repositories, dataset_id: str
) -> db_models.Dataset:
    dataset = repos.datasets.get(dataset_id)
    if dataset is None:
        raise errors.NotFoundError("Dataset not found")
    return dataset


@router.get("/geojson")
async def export_geojson(
    dataset_id: str = fastapi.Query(..., alias="datasetId", min_length=1),
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> fastapi.Response:
    dataset = _dataset_or_404(repos, dataset_id)
    collection = export.export_geojson(repos.features, dataset_id)
    return fastapi.Response(
        content=json.dumps(collection, ensure_ascii=False),
        media_type="application/geo+json",
        headers=_attachment(f"{dataset.name}.geojson"),
    )


@router.get("/csv")
async def export_csv(
    dataset_id: str = fastapi.Query(..., alias="datasetId", min_length=1),
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> fastapi.Response:
    """Download a dataset as CSV.

    Raises:
        NotFoundError: If the dataset does not exist or has no features.
    """
    dataset = _dataset_or_404(repos, dataset_id)
    document = export.export_csv(repos.features, dataset_id)
    if document is None:
        raise errors.NotFoundError("Dataset has no features to export")
    return responses.PlainTextResponse(
        content=document,
        media_type="text/csv",
        headers=_attachment(f"{dataset.name}.csv"),
    )


@router.get("/summary")
async def summary(
    dataset_id: str = fastapi.Query(..., alias="datasetId", min_length=1),
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    dataset = _dataset_or_404(repos, dataset_id)
    creator = repos.users.get(dataset.created_by)
    return envelope.success(
        export.summarize(
            dataset,
            repos.features,
            creator.name if creator else None,
        )
    )

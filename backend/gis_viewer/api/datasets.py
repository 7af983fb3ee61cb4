"""Dataset listing, upload and deletion endpoints.

Uploads are multipart forms with ``file``, ``name`` and ``type``. The raw
file is always kept in blob storage; GeoJSON uploads additionally have their
features extracted (see ``gis_viewer.services.ingest_geojson``).

Example:
    Upload a GeoJSON file:
        >>> response = client.post(
        ...     "/api/datasets/upload",
        ...     files={"file": ("spots.geojson", open("spots.geojson", "rb"))},
        ...     data={"name": "spots", "type": "geojson"},
        ...     headers=auth_headers,
        ... )
        >>> response.status_code
        201
        >>> response.json()["data"]["ingest"]["truncated"]
        False
"""

from __future__ import annotations

import logging
from typing import Any

import fastapi

from gis_viewer.api import deps, envelope
from gis_viewer.core import config, errors
from gis_viewer.db import database
from gis_viewer.db import models as db_models
from gis_viewer.services import ingest_geojson

logger = logging.getLogger(__name__)

router = fastapi.APIRouter(
    prefix="/api/datasets",
    tags=["datasets"],
    dependencies=[fastapi.Depends(deps.get_current_user)],
)

_CHUNK_SIZE = 1024 * 1024


def serialize_dataset(dataset: db_models.Dataset) -> dict[str, Any]:
    return {
        "id": dataset.id,
        "name": dataset.name,
        "type": dataset.type,
        "record_count": dataset.record_count,
        "storage_key": dataset.storage_key,
        "schema": dataset.schema,
        "status": dataset.status,
        "created_by": dataset.created_by,
        "created_at": dataset.created_at.isoformat(),
        "updated_at": dataset.updated_at.isoformat(),
    }


async def _read_upload(file: fastapi.UploadFile, max_size: int) -> bytes:
    """Read an uploaded file into memory with size validation.

    Args:
        file: FastAPI UploadFile object containing the file data.
        max_size: Maximum allowed file size in bytes.

    Returns:
        The file contents.

    Raises:
        PayloadTooLargeError: If the file exceeds the maximum size limit.
    """
    chunks: list[bytes] = []
    size = 0
    while chunk := await file.read(_CHUNK_SIZE):
        size += len(chunk)
        if size > max_size:
            raise errors.PayloadTooLargeError()
        chunks.append(chunk)
    return b"".join(chunks)


@router.get("")
async def list_datasets(
    page: int = fastapi.Query(1, ge=1),
    page_size: int = fastapi.Query(20, ge=1, le=500, alias="pageSize"),
    dataset_type: str | None = fastapi.Query(None, alias="type"),
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    """List datasets newest first, optionally filtered by type."""
    items, total = repos.datasets.list(page, page_size, dataset_type)
    return envelope.success(
        {
            "items": [serialize_dataset(dataset) for dataset in items],
            "page": page,
            "pageSize": page_size,
            "total": total,
        }
    )


@router.get("/{dataset_id}")
async def get_dataset(
    dataset_id: str,
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    dataset = repos.datasets.get(dataset_id)
    if dataset is None:
        raise errors.NotFoundError("Dataset not found")
    return envelope.success(serialize_dataset(dataset))


@router.post("/upload", status_code=201)
async def upload_dataset(
    file: fastapi.UploadFile | None = fastapi.File(None),  # noqa: B008
    name: str | None = fastapi.Form(None),
    dataset_type: str | None = fastapi.Form(None, alias="type"),
    user: deps.TokenUser = fastapi.Depends(deps.require_role("admin", "editor")),  # noqa: B008
    settings: config.Settings = fastapi.Depends(deps.get_settings),  # noqa: B008
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    """Store an uploaded file and register it as a dataset.

    A GeoJSON payload that cannot be parsed still produces a dataset with
    ``recordCount`` 0; the reason is reported in ``ingest.parseError``.

    Raises:
        ValidationError: If file, name or type is missing, or the type is
            not geojson, csv or shp.
        PayloadTooLargeError: If the file exceeds the upload size limit.
        StorageError: If blob or record storage is unavailable.
    """
    if file is None or not name or not dataset_type:
        raise errors.ValidationError("file, name and type are required")
    if dataset_type not in db_models.DATASET_TYPES:
        raise errors.ValidationError("type must be one of geojson, csv, shp")

    data = await _read_upload(file, settings.max_upload_size_bytes)
    dataset, report = ingest_geojson.ingest_dataset(
        repos,
        ingest_geojson.UploadedFile(
            filename=file.filename or "upload",
            data=data,
            content_type=file.content_type,
        ),
        name=name,
        dataset_type=dataset_type,  # type: ignore[arg-type]
        created_by=user.user_id,
        feature_limit=settings.ingest_feature_limit,
    )
    return envelope.success(
        {
            "datasetId": dataset.id,
            "name": dataset.name,
            "type": dataset.type,
            "recordCount": dataset.record_count,
            "createdAt": dataset.created_at.isoformat(),
            "ingest": report.to_dict(),
        }
    )


@router.delete("/{dataset_id}")
async def delete_dataset(
    dataset_id: str,
    user: deps.TokenUser = fastapi.Depends(deps.require_role("admin")),  # noqa: B008
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    """Delete a dataset with its features, styles and stored file."""
    dataset = repos.datasets.get(dataset_id)
    if dataset is None:
        raise errors.NotFoundError("Dataset not found")

    if dataset.storage_key:
        repos.blobs.delete(dataset.storage_key)
    removed = repos.features.delete_by_dataset(dataset_id)
    repos.styles.delete_by_dataset(dataset_id)
    repos.datasets.delete(dataset_id)

    logger.info(
        "User %s deleted dataset %s (%d features)",
        user.user_id,
        dataset_id,
        removed,
    )
    return envelope.success({"deleted": True})

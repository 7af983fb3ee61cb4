"""Layer style CRUD.

Styles are opaque MapLibre documents attached to a dataset. At most one
style per dataset carries ``isDefault``; setting it on one style clears it
on the others.
"""

import logging
from typing import Any

import fastapi
import pydantic

from gis_viewer.api import deps, envelope
from gis_viewer.core import errors
from gis_viewer.db import database
from gis_viewer.db import models as db_models

logger = logging.getLogger(__name__)

router = fastapi.APIRouter(
    prefix="/api/styles",
    tags=["styles"],
    dependencies=[fastapi.Depends(deps.get_current_user)],
)

_editor = deps.require_role("admin", "editor")


class StyleCreate(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(populate_by_name=True)

    dataset_id: str = pydantic.Field(alias="datasetId", min_length=1)
    name: str = pydantic.Field(min_length=1)
    style: dict[str, Any]
    is_default: bool = pydantic.Field(False, alias="isDefault")


class StyleUpdate(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(populate_by_name=True)

    name: str | None = pydantic.Field(None, min_length=1)
    style: dict[str, Any] | None = None
    is_default: bool | None = pydantic.Field(None, alias="isDefault")


def serialize_style(style: db_models.LayerStyle) -> dict[str, Any]:
    return {
        "id": style.id,
        "datasetId": style.dataset_id,
        "name": style.name,
        "style": style.style,
        "isDefault": style.is_default,
        "createdBy": style.created_by,
        "createdAt": style.created_at.isoformat(),
        "updatedAt": style.updated_at.isoformat(),
    }


@router.get("")
async def list_styles(
    dataset_id: str = fastapi.Query(..., alias="datasetId", min_length=1),
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    """Styles of a dataset, default first, then newest first."""
    return envelope.success(
        [serialize_style(style) for style in repos.styles.list_for_dataset(dataset_id)]
    )


@router.post("", status_code=201)
async def create_style(
    body: StyleCreate,
    user: deps.TokenUser = fastapi.Depends(_editor),  # noqa: B008
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    if body.is_default:
        repos.styles.clear_default(body.dataset_id)

    style = repos.styles.add(
        db_models.LayerStyle(
            id=db_models.new_id("style"),
            dataset_id=body.dataset_id,
            name=body.name,
            style=body.style,
            is_default=body.is_default,
            created_by=user.user_id,
        )
    )
    logger.info(
        "User %s created style %s for dataset %s",
        user.user_id,
        style.id,
        style.dataset_id,
    )
    return envelope.success(serialize_style(style))


@router.put("/{style_id}")
async def update_style(
    style_id: str,
    body: StyleUpdate,
    user: deps.TokenUser = fastapi.Depends(_editor),  # noqa: B008
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    """Change name, style document or default flag of a style.

    Raises:
        NotFoundError: If the style does not exist.
        ValidationError: If the body carries nothing to update.
    """
    style = repos.styles.get(style_id)
    if style is None:
        raise errors.NotFoundError("Style not found")
    if body.name is None and body.style is None and body.is_default is None:
        raise errors.ValidationError("Nothing to update")

    if body.name is not None:
        style.name = body.name
    if body.style is not None:
        style.style = body.style
    if body.is_default is not None:
        if body.is_default:
            repos.styles.clear_default(style.dataset_id)
        style.is_default = body.is_default

    repos.styles.update(style)
    logger.info("User %s updated style %s", user.user_id, style_id)
    return envelope.success({"id": style_id, "updated": True})


@router.delete("/{style_id}")
async def delete_style(
    style_id: str,
    user: deps.TokenUser = fastapi.Depends(_editor),  # noqa: B008
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    repos.styles.delete(style_id)
    logger.info("User %s deleted style %s", user.user_id, style_id)
    return envelope.success({"deleted": True})

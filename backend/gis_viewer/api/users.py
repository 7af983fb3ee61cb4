"""User registration, profiles, preferences and administration.

The router has no prefix of its own; ``create_app`` mounts it under both
``/api`` and ``/api/admin`` so the admin console and the profile page share
one implementation.
"""

import logging
from typing import Any

import fastapi
import pydantic

from gis_viewer.api import deps, envelope
from gis_viewer.core import errors, security
from gis_viewer.db import database
from gis_viewer.db import models as db_models

logger = logging.getLogger(__name__)

router = fastapi.APIRouter(tags=["users"])

_admin = deps.require_role("admin")


class RegisterRequest(pydantic.BaseModel):
    email: str = pydantic.Field(min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = pydantic.Field(min_length=1)
    name: str = pydantic.Field(min_length=1)


class UserUpdate(pydantic.BaseModel):
    name: str | None = pydantic.Field(None, min_length=1)
    password: str | None = pydantic.Field(None, min_length=1)
    role: str | None = None


def _ensure_self_or_admin(current: deps.TokenUser, user_id: str) -> None:
    if current.user_id != user_id and current.role != "admin":
        raise errors.ForbiddenError()


def _user_or_404(repos: database.Repositories, user_id: str) -> db_models.User:
    user = repos.users.get(user_id)
    if user is None:
        raise errors.NotFoundError("User not found")
    return user


@router.post("/users/register", status_code=201)
async def register(
    body: RegisterRequest,
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    """Create a viewer account.

    Raises:
        ConflictError: If the email is already registered.
    """
    user = repos.users.add(
        db_models.User(
            id=db_models.new_id("user"),
            email=body.email,
            name=body.name,
            role="viewer",
            password_hash=security.hash_password(body.password),
        )
    )
    logger.info("Registered user %s", user.id)
    return envelope.success({"user": user.public()})


@router.get("/users")
async def list_users(
    page: int = fastapi.Query(1, ge=1),
    page_size: int = fastapi.Query(20, ge=1, le=500, alias="pageSize"),
    current: deps.TokenUser = fastapi.Depends(_admin),  # noqa: B008
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    items, total = repos.users.list(page, page_size)
    return envelope.success(
        {
            "items": [user.public() for user in items],
            "page": page,
            "pageSize": page_size,
            "total": total,
        }
    )


@router.get("/users/{user_id}")
async def get_user(
    user_id: str,
    current: deps.TokenUser = fastapi.Depends(deps.get_current_user),  # noqa: B008
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    """Profile and preferences of a user; callers may read only their own
    unless they are admins."""
    _ensure_self_or_admin(current, user_id)
    user = _user_or_404(repos, user_id)
    return envelope.success(
        {"user": user.public(), "preferences": repos.users.get_preferences(user_id)}
    )


@router.put("/users/{user_id}")
async def update_user(
    user_id: str,
    body: UserUpdate,
    current: deps.TokenUser = fastapi.Depends(deps.get_current_user),  # noqa: B008
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    """Update name, password or role.

    Raises:
        ForbiddenError: If a non-admin edits another user or any role.
        ValidationError: If the role is unknown or nothing is updated.
        NotFoundError: If the user does not exist.
    """
    _ensure_self_or_admin(current, user_id)
    if body.role is not None:
        if current.role != "admin":
            raise errors.ForbiddenError("Only admins can change roles")
        if body.role not in db_models.USER_ROLES:
            raise errors.ValidationError(
                "role must be one of " + ", ".join(db_models.USER_ROLES)
            )
    if body.name is None and body.password is None and body.role is None:
        raise errors.ValidationError("Nothing to update")

    user = _user_or_404(repos, user_id)
    if body.name is not None:
        user.name = body.name
    if body.password is not None:
        user.password_hash = security.hash_password(body.password)
    if body.role is not None:
        user.role = body.role  # type: ignore[assignment]
    repos.users.update(user)

    logger.info("User %s updated user %s", current.user_id, user_id)
    return envelope.success({"id": user_id, "updated": True})


@router.put("/users/{user_id}/preferences")
async def update_preferences(
    user_id: str,
    preferences: dict[str, Any] = fastapi.Body(...),  # noqa: B008
    current: deps.TokenUser = fastapi.Depends(deps.get_current_user),  # noqa: B008
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    """Replace the caller's own preferences document."""
    if current.user_id != user_id:
        raise errors.ForbiddenError()
    _user_or_404(repos, user_id)
    repos.users.set_preferences(user_id, preferences)
    return envelope.success({"updated": True})


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: str,
    current: deps.TokenUser = fastapi.Depends(_admin),  # noqa: B008
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    repos.users.delete(user_id)
    logger.info("User %s deleted user %s", current.user_id, user_id)
    return envelope.success({"deleted": True})

"""Login and current-user endpoints.

Example:
    >>> response = client.post(
    ...     "/api/auth/login",
    ...     json={"email": "admin@example.com", "password": "admin123"},
    ... )
    >>> token = response.json()["data"]["accessToken"]
    >>> client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
"""

import logging

import fastapi
import pydantic

from gis_viewer.api import deps, envelope
from gis_viewer.core import config, errors, security
from gis_viewer.db import database

logger = logging.getLogger(__name__)

router = fastapi.APIRouter(prefix="/api/auth", tags=["auth"])


class LoginRequest(pydantic.BaseModel):
    email: str = pydantic.Field(min_length=1)
    password: str = pydantic.Field(min_length=1)


@router.post("/login")
async def login(
    body: LoginRequest,
    settings: config.Settings = fastapi.Depends(deps.get_settings),  # noqa: B008
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    """Exchange email and password for a bearer token.

    Raises:
        InvalidCredentialsError: If the email is unknown or the password
            does not match. Both cases share one message.
    """
    user = repos.users.get_by_email(body.email)
    if user is None or not security.verify_password(
        body.password, user.password_hash
    ):
        raise errors.InvalidCredentialsError()

    token = security.sign_token(
        {"userId": user.id, "email": user.email, "role": user.role},
        settings.jwt_secret,
        settings.token_ttl_seconds,
    )
    logger.info("User %s logged in", user.id)
    return envelope.success({"accessToken": token, "user": user.public()})


@router.get("/me")
async def me(
    current: deps.TokenUser = fastapi.Depends(deps.get_current_user),  # noqa: B008
    repos: database.Repositories = fastapi.Depends(deps.get_repositories),  # noqa: B008
) -> envelope.ApiResponse:
    """Return the stored profile of the calling user."""
    user = repos.users.get(current.user_id)
    if user is None:
        raise errors.NotFoundError("User not found")
    return envelope.success(user.public())

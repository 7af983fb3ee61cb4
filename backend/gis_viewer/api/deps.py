"""FastAPI dependencies: settings, repositories and the calling user.

Repositories and settings are read from ``app.state`` where
``gis_viewer.main.create_app`` placed them, so tests can build an app with
their own settings or swap a dependency through
``app.dependency_overrides``.

Example:
    Protect a route for editors and admins:
        >>> @router.post("")
        ... async def create(
        ...     user: deps.TokenUser = fastapi.Depends(
        ...         deps.require_role("admin", "editor")
        ...     ),
        ... ) -> envelope.ApiResponse: ...
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable

import fastapi
from fastapi import security as fastapi_security

from gis_viewer.core import config, errors, security
from gis_viewer.db import database

_bearer = fastapi_security.HTTPBearer(auto_error=False)


@dataclasses.dataclass(frozen=True)
class TokenUser:
    """Identity carried by a verified bearer token."""

    user_id: str
    email: str
    role: str


def get_settings(request: fastapi.Request) -> config.Settings:
    return request.app.state.settings


def get_repositories(request: fastapi.Request) -> database.Repositories:
    return request.app.state.repositories


def get_current_user(
    credentials: fastapi_security.HTTPAuthorizationCredentials | None = fastapi.Depends(_bearer),  # noqa: B008
    settings: config.Settings = fastapi.Depends(get_settings),  # noqa: B008
) -> TokenUser:
    """Resolve the bearer token into the calling user.

    Raises:
        UnauthorizedError: If no bearer token was sent.
        InvalidTokenError: If the token fails verification or lacks claims.
    """
    if credentials is None:
        raise errors.UnauthorizedError()

    payload = security.verify_token(credentials.credentials, settings.jwt_secret)
    try:
        return TokenUser(
            user_id=str(payload["userId"]),
            email=str(payload["email"]),
            role=str(payload["role"]),
        )
    except KeyError as exc:
        raise errors.InvalidTokenError("Token is missing claims") from exc


def require_role(*allowed_roles: str) -> Callable[..., TokenUser]:
    """Build a dependency that admits only users holding one of the roles."""

    def _check_role(
        user: TokenUser = fastapi.Depends(get_current_user),  # noqa: B008
    ) -> TokenUser:
        if user.role not in allowed_roles:
            raise errors.ForbiddenError()
        return user

    return _check_role

"""Repository protocols and backend selection.

Each record type has a Protocol describing its persistence contract, with
an in-memory implementation (``gis_viewer.db.memory``, tests and local
development) and a PostgreSQL implementation (``gis_viewer.db.postgres``).
``get_repositories`` builds the bundle for the backend named in settings;
``gis_viewer.main.create_app`` calls it once and keeps the result on
``app.state`` so no repository state lives at module level.

Example:
    >>> from gis_viewer.core import config
    >>> repos = get_repositories(config.Settings(storage_backend="memory"))
    >>> list(repos.features.scan("dataset-1"))
    []
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from gis_viewer.core import config
    from gis_viewer.db import blob_store
    from gis_viewer.db import filters as db_filters
    from gis_viewer.db import models as db_models


class DatasetRepositoryProtocol(Protocol):
    """Protocol interface for storing and retrieving dataset metadata."""

    def add(self, dataset: db_models.Dataset) -> db_models.Dataset:
        """Store a dataset.

        Args:
            dataset: Dataset metadata to store.

        Returns:
            The stored dataset.
        """
        ...

    def get(self, dataset_id: str) -> db_models.Dataset | None:
        """Retrieve a dataset by id.

        Args:
            dataset_id: Unique identifier of the dataset.

        Returns:
            Dataset if found, None otherwise.
        """
        ...

    def list(
        self,
        page: int,
        page_size: int,
        dataset_type: str | None = None,
    ) -> tuple[list[db_models.Dataset], int]:
        """List datasets newest first.

        Args:
            page: 1-based page number.
            page_size: Datasets per page.
            dataset_type: Only datasets of this type, if given.

        Returns:
            Tuple of (page of datasets, total matching count).
        """
        ...

    def adjust_record_count(self, dataset_id: str, delta: int) -> None:
        """Add ``delta`` to ``record_count`` in one atomic step.

        Args:
            dataset_id: Dataset to adjust.
            delta: Signed change, usually +1 or -1.

        Raises:
            NotFoundError: If the dataset does not exist.
        """
        ...

    def delete(self, dataset_id: str) -> db_models.Dataset:
        """Remove a dataset row; features and styles are not touched.

        Args:
            dataset_id: Dataset to remove.

        Returns:
            The removed dataset.

        Raises:
            NotFoundError: If the dataset does not exist.
        """
        ...


class FeatureRepositoryProtocol(Protocol):
    """Protocol interface for the feature store.

    ``scan`` returns rows in insertion order; there is no cursor across
    calls, ``limit`` is the only bound on a result.
    """

    def add(self, feature: db_models.Feature) -> db_models.Feature:
        """Insert one feature.

        Args:
            feature: Row to insert.

        Returns:
            The inserted feature.
        """
        ...

    def add_many(self, features: Sequence[db_models.Feature]) -> int:
        """Insert features in order.

        Args:
            features: Rows to insert.

        Returns:
            Number of rows inserted.
        """
        ...

    def get(self, feature_id: str) -> db_models.Feature | None:
        """Retrieve a feature by id.

        Args:
            feature_id: Unique identifier of the feature.

        Returns:
            Feature if found, None otherwise.
        """
        ...

    def scan(
        self,
        dataset_id: str,
        feature_filter: db_filters.FeatureFilter | None = None,
        limit: int | None = None,
    ) -> Iterable[db_models.Feature]:
        """Features of one dataset matching every predicate of the filter.

        Args:
            dataset_id: Dataset to scan.
            feature_filter: Predicates to apply, or None for every row.
            limit: Maximum number of rows, or None for no cap.

        Returns:
            Matching features in insertion order.
        """
        ...

    def update(self, feature: db_models.Feature) -> db_models.Feature:
        """Replace geometry type, bbox and properties of a feature.

        Args:
            feature: Row carrying the new values.

        Returns:
            The updated feature.

        Raises:
            NotFoundError: If no feature has this id.
        """
        ...

    def delete(self, feature_id: str) -> db_models.Feature:
        """Remove a feature.

        Args:
            feature_id: Feature to remove.

        Returns:
            The removed feature.

        Raises:
            NotFoundError: If no feature has this id.
        """
        ...

    def delete_by_dataset(self, dataset_id: str) -> int:
        """Remove every feature of a dataset.

        Args:
            dataset_id: Dataset whose features are removed.

        Returns:
            Number of rows removed.
        """
        ...


class UserRepositoryProtocol(Protocol):
    """Protocol interface for accounts and their preferences."""

    def add(self, user: db_models.User) -> db_models.User:
        """Insert a user.

        Args:
            user: Account to insert.

        Returns:
            The inserted user.

        Raises:
            ConflictError: If the email is already registered.
        """
        ...

    def get(self, user_id: str) -> db_models.User | None:
        """Retrieve a user by id, or None."""
        ...

    def get_by_email(self, email: str) -> db_models.User | None:
        """Retrieve a user by exact email, or None."""
        ...

    def list(
        self,
        page: int,
        page_size: int,
    ) -> tuple[list[db_models.User], int]:
        """List users newest first.

        Args:
            page: 1-based page number.
            page_size: Users per page.

        Returns:
            Tuple of (page of users, total count).
        """
        ...

    def update(self, user: db_models.User) -> db_models.User:
        """Save name, role and password hash of a user.

        Args:
            user: Account carrying the new values.

        Returns:
            The stored user with a fresh ``updated_at``.

        Raises:
            NotFoundError: If no user has this id.
        """
        ...

    def delete(self, user_id: str) -> None:
        """Remove a user and their preferences.

        Raises:
            NotFoundError: If no user has this id.
        """
        ...

    def get_preferences(self, user_id: str) -> dict[str, Any]:
        """The user's preferences document, empty when none was saved."""
        ...

    def set_preferences(
        self,
        user_id: str,
        preferences: dict[str, Any],
    ) -> None:
        """Replace the user's preferences document.

        Args:
            user_id: Owner of the preferences.
            preferences: Opaque client document.
        """
        ...


class StyleRepositoryProtocol(Protocol):
    """Protocol interface for layer style documents."""

    def add(self, style: db_models.LayerStyle) -> db_models.LayerStyle:
        """Insert a style.

        Args:
            style: Style to insert.

        Returns:
            The inserted style.
        """
        ...

    def get(self, style_id: str) -> db_models.LayerStyle | None:
        """Retrieve a style by id, or None."""
        ...

    def list_for_dataset(
        self,
        dataset_id: str,
    ) -> list[db_models.LayerStyle]:
        """Styles of a dataset.

        Args:
            dataset_id: Dataset the styles belong to.

        Returns:
            The default style first, then the rest newest first.
        """
        ...

    def update(self, style: db_models.LayerStyle) -> db_models.LayerStyle:
        """Save name, style document and default flag.

        Args:
            style: Style carrying the new values.

        Returns:
            The stored style with a fresh ``updated_at``.

        Raises:
            NotFoundError: If no style has this id.
        """
        ...

    def clear_default(self, dataset_id: str) -> None:
        """Unset the default flag on every style of a dataset."""
        ...

    def delete(self, style_id: str) -> None:
        """Remove a style.

        Raises:
            NotFoundError: If no style has this id.
        """
        ...

    def delete_by_dataset(self, dataset_id: str) -> int:
        """Remove every style of a dataset and return how many were removed."""
        ...


@dataclasses.dataclass
class Repositories:
    """All stores the API needs, built once per application."""

    datasets: DatasetRepositoryProtocol
    features: FeatureRepositoryProtocol
    users: UserRepositoryProtocol
    styles: StyleRepositoryProtocol
    blobs: blob_store.BlobStoreProtocol


def get_repositories(settings: config.Settings) -> Repositories:
    """Factory function to create the repositories named by settings.

    Args:
        settings: Application settings; ``storage_backend`` selects
            "memory" or "postgres" and ``blob_backend`` the blob store.

    Returns:
        Repositories bundle for the selected backend.
    """
    from gis_viewer.db import blob_store

    blobs: blob_store.BlobStoreProtocol
    if settings.blob_backend == "local":
        blobs = blob_store.LocalBlobStore(settings.storage_dir)
    else:
        blobs = blob_store.InMemoryBlobStore()

    if settings.storage_backend == "postgres":
        from gis_viewer.db import postgres

        return Repositories(
            datasets=postgres.PostgresDatasetRepository(settings),
            features=postgres.PostgresFeatureRepository(settings),
            users=postgres.PostgresUserRepository(settings),
            styles=postgres.PostgresStyleRepository(settings),
            blobs=blobs,
        )

    from gis_viewer.db import memory

    return Repositories(
        datasets=memory.InMemoryDatasetRepository(),
        features=memory.InMemoryFeatureRepository(),
        users=memory.InMemoryUserRepository(),
        styles=memory.InMemoryStyleRepository(),
        blobs=blobs,
    )

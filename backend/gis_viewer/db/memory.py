"""In-memory repositories for tests and local development.

Records live in dictionaries owned by each repository instance. Data is lost
when the process exits. Dictionaries keep insertion order, which is the
storage order ``scan`` reports.

Every mutation runs under the repository's own ``threading.Lock``. Scans and
listings work on a snapshot taken under the same lock, so a reader never
sees a dictionary change size mid-iteration.
"""

from __future__ import annotations

import dataclasses
import threading
from typing import TYPE_CHECKING, Any, TypeVar

from gis_viewer.core import errors
from gis_viewer.db import database
from gis_viewer.db import models as db_models

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from gis_viewer.db import filters as db_filters


T = TypeVar("T")


def _page(items: list[T], page: int, page_size: int) -> list[T]:
    start = (page - 1) * page_size
    return items[start : start + page_size]


class InMemoryDatasetRepository(database.DatasetRepositoryProtocol):
    """Dataset metadata keyed by id."""

    def __init__(self) -> None:
        """Initialize an empty dataset store."""
        self._store: dict[str, db_models.Dataset] = {}
        self._lock = threading.Lock()

    def add(self, dataset: db_models.Dataset) -> db_models.Dataset:
        """Add or replace a dataset.

        Args:
            dataset: Dataset metadata to store.

        Returns:
            The stored dataset.
        """
        with self._lock:
            self._store[dataset.id] = dataset
        return dataset

    def get(self, dataset_id: str) -> db_models.Dataset | None:
        return self._store.get(dataset_id)

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
        with self._lock:
            snapshot = list(self._store.values())
        matching = [
            dataset
            for dataset in snapshot
            if dataset_type is None or dataset.type == dataset_type
        ]
        matching.sort(key=lambda dataset: dataset.created_at, reverse=True)
        return _page(matching, page, page_size), len(matching)

    def adjust_record_count(self, dataset_id: str, delta: int) -> None:
        """Add ``delta`` to the record count as one locked step.

        Raises:
            NotFoundError: If the dataset does not exist.
        """
        with self._lock:
            dataset = self._store.get(dataset_id)
            if dataset is None:
                raise errors.NotFoundError("Dataset not found")
            dataset.record_count += delta
            dataset.updated_at = db_models.utcnow()

    def delete(self, dataset_id: str) -> db_models.Dataset:
        with self._lock:
            dataset = self._store.pop(dataset_id, None)
        if dataset is None:
            raise errors.NotFoundError("Dataset not found")
        return dataset


class InMemoryFeatureRepository(database.FeatureRepositoryProtocol):
    """Feature rows keyed by id, scanned in insertion order."""

    def __init__(self) -> None:
        """Initialize an empty feature store."""
        self._store: dict[str, db_models.Feature] = {}
        self._lock = threading.Lock()

    def add(self, feature: db_models.Feature) -> db_models.Feature:
        with self._lock:
            self._store[feature.id] = feature
        return feature

    def add_many(self, features: Sequence[db_models.Feature]) -> int:
        """Insert features in order.

        Args:
            features: Rows to insert.

        Returns:
            Number of rows inserted.
        """
        with self._lock:
            for feature in features:
                self._store[feature.id] = feature
        return len(features)

    def get(self, feature_id: str) -> db_models.Feature | None:
        return self._store.get(feature_id)

    def scan(
        self,
        dataset_id: str,
        feature_filter: db_filters.FeatureFilter | None = None,
        limit: int | None = None,
    ) -> Iterator[db_models.Feature]:
        """Yield the dataset's features matching ``feature_filter``.

        Args:
            dataset_id: Dataset to scan.
            feature_filter: Predicates to apply, or None for every row.
            limit: Maximum number of rows, or None for no cap.

        Returns:
            Iterator over matching features in insertion order.
        """
        if limit is not None and limit <= 0:
            return
        with self._lock:
            snapshot = list(self._store.values())
        found = 0
        for feature in snapshot:
            if feature.dataset_id != dataset_id:
                continue
            if feature_filter is not None and not feature_filter.matches(
                feature
            ):
                continue
            yield feature
            found += 1
            if limit is not None and found >= limit:
                return

    def update(self, feature: db_models.Feature) -> db_models.Feature:
        """Replace an existing feature.

        Raises:
            NotFoundError: If no feature has this id.
        """
        with self._lock:
            if feature.id not in self._store:
                raise errors.NotFoundError("Feature not found")
            self._store[feature.id] = feature
        return feature

    def delete(self, feature_id: str) -> db_models.Feature:
        with self._lock:
            feature = self._store.pop(feature_id, None)
        if feature is None:
            raise errors.NotFoundError("Feature not found")
        return feature

    def delete_by_dataset(self, dataset_id: str) -> int:
        with self._lock:
            doomed = [
                feature_id
                for feature_id, feature in self._store.items()
                if feature.dataset_id == dataset_id
            ]
            for feature_id in doomed:
                del self._store[feature_id]
        return len(doomed)


class InMemoryUserRepository(database.UserRepositoryProtocol):
    def __init__(self) -> None:
        self._store: dict[str, db_models.User] = {}
        self._preferences: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def _find_email(self, email: str) -> db_models.User | None:
        return next(
            (user for user in list(self._store.values()) if user.email == email),
            None,
        )

    def add(self, user: db_models.User) -> db_models.User:
        """Insert a user.

        Raises:
            ConflictError: If another user already has the email.
        """
        with self._lock:
            if self._find_email(user.email) is not None:
                raise errors.ConflictError("Email is already registered")
            self._store[user.id] = user
        return user

    def get(self, user_id: str) -> db_models.User | None:
        return self._store.get(user_id)

    def get_by_email(self, email: str) -> db_models.User | None:
        with self._lock:
            return self._find_email(email)

    def list(
        self,
        page: int,
        page_size: int,
    ) -> tuple[list[db_models.User], int]:
        with self._lock:
            users = sorted(
                self._store.values(),
                key=lambda user: user.created_at,
                reverse=True,
            )
        return _page(users, page, page_size), len(users)

    def update(self, user: db_models.User) -> db_models.User:
        """Replace a user and stamp ``updated_at``.

        Raises:
            NotFoundError: If no user has this id.
        """
        with self._lock:
            if user.id not in self._store:
                raise errors.NotFoundError("User not found")
            self._store[user.id] = dataclasses.replace(
                user, updated_at=db_models.utcnow()
            )
            return self._store[user.id]

    def delete(self, user_id: str) -> None:
        with self._lock:
            if self._store.pop(user_id, None) is None:
                raise errors.NotFoundError("User not found")
            self._preferences.pop(user_id, None)

    def get_preferences(self, user_id: str) -> dict[str, Any]:
        """Copy of the user's preferences, empty when none were saved."""
        return dict(self._preferences.get(user_id, {}))

    def set_preferences(
        self,
        user_id: str,
        preferences: dict[str, Any],
    ) -> None:
        with self._lock:
            self._preferences[user_id] = dict(preferences)


class InMemoryStyleRepository(database.StyleRepositoryProtocol):
    def __init__(self) -> None:
        self._store: dict[str, db_models.LayerStyle] = {}
        self._lock = threading.Lock()

    def add(self, style: db_models.LayerStyle) -> db_models.LayerStyle:
        with self._lock:
            self._store[style.id] = style
        return style

    def get(self, style_id: str) -> db_models.LayerStyle | None:
        return self._store.get(style_id)

    def list_for_dataset(
        self,
        dataset_id: str,
    ) -> list[db_models.LayerStyle]:
        """Styles of a dataset, the default first and then newest first."""
        with self._lock:
            styles = [
                style
                for style in self._store.values()
                if style.dataset_id == dataset_id
            ]
        styles.sort(key=lambda style: style.created_at, reverse=True)
        styles.sort(key=lambda style: style.is_default, reverse=True)
        return styles

    def update(self, style: db_models.LayerStyle) -> db_models.LayerStyle:
        with self._lock:
            if style.id not in self._store:
                raise errors.NotFoundError("Style not found")
            self._store[style.id] = dataclasses.replace(
                style, updated_at=db_models.utcnow()
            )
            return self._store[style.id]

    def clear_default(self, dataset_id: str) -> None:
        with self._lock:
            for style in self._store.values():
                if style.dataset_id == dataset_id:
                    style.is_default = False

    def delete(self, style_id: str) -> None:
        with self._lock:
            if self._store.pop(style_id, None) is None:
                raise errors.NotFoundError("Style not found")

    def delete_by_dataset(self, dataset_id: str) -> int:
        with self._lock:
            doomed = [
                style_id
                for style_id, style in self._store.items()
                if style.dataset_id == dataset_id
            ]
            for style_id in doomed:
                del self._store[style_id]
        return len(doomed)

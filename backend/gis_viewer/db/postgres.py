"""PostgreSQL-backed repositories.

Each repository opens one psycopg2 connection per operation, creates its
tables on initialization and converts between dataclasses and row
dictionaries with ``_to_row`` / ``_from_row``. Driver failures are raised as
``StorageError`` so routes never see psycopg2 exception types.

Feature bounding boxes are four nullable columns. The spatial predicates are
plain comparisons on those columns; there is no spatial index.
"""

from __future__ import annotations

import contextlib
import datetime
import json
from typing import TYPE_CHECKING, Any, cast

import psycopg2
import psycopg2.errors
import psycopg2.extras

from gis_viewer.core import errors
from gis_viewer.db import database
from gis_viewer.db import filters as db_filters
from gis_viewer.db import models as db_models

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from gis_viewer.core import config

_SCORE_TEXT = "(properties_json::jsonb ->> 'score')"
_SCORE_SQL = (
    f"CASE WHEN {_SCORE_TEXT} ~ '^-?[0-9]+(\\.[0-9]+)?$' "
    f"THEN trunc({_SCORE_TEXT}::numeric) END"
)
_ATTR_NUMBER_SQL = (
    "CASE WHEN (properties_json::jsonb ->> %s) ~ '^-?[0-9]+(\\.[0-9]+)?$' "
    "THEN (properties_json::jsonb ->> %s)::double precision END"
)


def _like_pattern(text: str) -> str:
    """Wrap text in ``%`` for a substring ILIKE, escaping wildcards."""
    escaped = (
        text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    )
    return f"%{escaped}%"


def _timestamp(value: object) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        return value
    return db_models.utcnow()


def _bbox_from_row(row: dict[str, Any]) -> db_models.BBox | None:
    bbox = (
        row.get("min_lon"),
        row.get("min_lat"),
        row.get("max_lon"),
        row.get("max_lat"),
    )
    if any(v is None for v in bbox):
        return None
    return cast(db_models.BBox, tuple(float(cast(float, v)) for v in bbox))


def filter_sql(
    feature_filter: db_filters.FeatureFilter,
) -> tuple[list[str], list[Any]]:
    """Translate a FeatureFilter into WHERE clauses and their parameters.

    Args:
        feature_filter: Predicates to translate.

    Returns:
        Tuple of (clauses, params); clauses are meant to be ANDed.
    """
    clauses: list[str] = []
    params: list[Any] = []

    if feature_filter.bbox is not None:
        min_lon, min_lat, max_lon, max_lat = feature_filter.bbox
        clauses.append(
            "max_lon >= %s AND min_lon <= %s AND max_lat >= %s AND min_lat <= %s"
        )
        params.extend([min_lon, max_lon, min_lat, max_lat])

    if feature_filter.within is not None:
        min_lon, min_lat, max_lon, max_lat = feature_filter.within
        clauses.append(
            "min_lon >= %s AND max_lon <= %s AND min_lat >= %s AND max_lat <= %s"
        )
        params.extend([min_lon, max_lon, min_lat, max_lat])

    if feature_filter.text:
        clauses.append("properties_json ILIKE %s")
        params.append(_like_pattern(feature_filter.text))

    if feature_filter.full_text:
        clauses.append(
            "to_tsvector('simple', properties_json) "
            "@@ plainto_tsquery('simple', %s)"
        )
        params.append(feature_filter.full_text)

    if feature_filter.category:
        clauses.append("properties_json ILIKE %s")
        params.append(
            _like_pattern(db_filters.category_fragment(feature_filter.category))
        )

    if feature_filter.min_score is not None:
        clauses.append(f"{_SCORE_SQL} >= %s")
        params.append(feature_filter.min_score)

    if feature_filter.max_score is not None:
        clauses.append(f"{_SCORE_SQL} <= %s")
        params.append(feature_filter.max_score)

    for attr in feature_filter.attributes:
        if attr.operator == "eq":
            clauses.append("(properties_json::jsonb -> %s) = %s::jsonb")
            params.extend([attr.key, json.dumps(attr.value)])
        elif attr.operator == "in":
            clauses.append("(properties_json::jsonb -> %s) = ANY(%s::jsonb[])")
            params.extend([attr.key, [json.dumps(v) for v in attr.value]])
        elif attr.operator == "like":
            clauses.append("(properties_json::jsonb ->> %s) ILIKE %s")
            params.extend([attr.key, _like_pattern(str(attr.value))])
        else:
            comparison = ">" if attr.operator == "gt" else "<"
            clauses.append(f"{_ATTR_NUMBER_SQL} {comparison} %s")
            params.extend([attr.key, attr.key, float(attr.value)])

    return clauses, params


class _PostgresRepository:
    """Connection and schema handling shared by the repositories."""

    CREATE_TABLE_SQL = ""

    def __init__(self, settings: config.Settings) -> None:
        """Initialize repository with database settings.

        Args:
            settings: Application settings containing database connection URL.
        """
        self.settings = settings
        self._ensure_schema()

    @contextlib.contextmanager
    def _cursor(self) -> Iterator[psycopg2.extras.RealDictCursor]:
        """Yield a dict cursor inside one committed transaction.

        Raises:
            StorageError: If the database cannot be reached or the statement
                fails for a reason other than a constraint violation.
        """
        try:
            conn = psycopg2.connect(self.settings.database_url)
        except psycopg2.Error as exc:
            raise errors.StorageError("Database unavailable") from exc

        try:
            with conn, conn.cursor(
                cursor_factory=psycopg2.extras.RealDictCursor
            ) as cur:
                yield cur
        except psycopg2.IntegrityError:
            raise
        except psycopg2.Error as exc:
            raise errors.StorageError("Database operation failed") from exc
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._cursor() as cur:
            cur.execute(self.CREATE_TABLE_SQL)


class PostgresDatasetRepository(
    _PostgresRepository, database.DatasetRepositoryProtocol
):
    CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS datasets (
      id TEXT PRIMARY KEY,
      name TEXT NOT NULL,
      type TEXT NOT NULL,
      record_count INTEGER NOT NULL DEFAULT 0,
      storage_key TEXT,
      schema_json TEXT,
      status TEXT NOT NULL DEFAULT 'active',
      created_by TEXT NOT NULL,
      created_at TIMESTAMPTZ DEFAULT now(),
      updated_at TIMESTAMPTZ DEFAULT now()
    );
    """

    def add(self, dataset: db_models.Dataset) -> db_models.Dataset:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO datasets (
                    id, name, type, record_count, storage_key, schema_json,
                    status, created_by, created_at, updated_at
                ) VALUES (%(id)s, %(name)s, %(type)s, %(record_count)s,
                    %(storage_key)s, %(schema_json)s, %(status)s,
                    %(created_by)s, %(created_at)s, %(updated_at)s)
                """,
                self._to_row(dataset),
            )
        return dataset

    def get(self, dataset_id: str) -> db_models.Dataset | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM datasets WHERE id = %s", (dataset_id,))
            row = cur.fetchone()
        return None if row is None else self._from_row(dict(row))

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
        where = "WHERE type = %s" if dataset_type else ""
        params: list[Any] = [dataset_type] if dataset_type else []
        with self._cursor() as cur:
            cur.execute(f"SELECT COUNT(*) AS count FROM datasets {where}", params)
            count_row = cur.fetchone()
            total = int(count_row["count"]) if count_row else 0
            cur.execute(
                f"""
                SELECT * FROM datasets {where}
                ORDER BY created_at DESC
                LIMIT %s OFFSET %s
                """,
                [*params, page_size, (page - 1) * page_size],
            )
            rows = cur.fetchall()
        return [self._from_row(dict(row)) for row in rows], total

    def adjust_record_count(self, dataset_id: str, delta: int) -> None:
        """Apply ``delta`` with one UPDATE so concurrent edits cannot drift."""
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE datasets
                SET record_count = record_count + %s, updated_at = now()
                WHERE id = %s
                """,
                (delta, dataset_id),
            )
            if cur.rowcount == 0:
                raise errors.NotFoundError("Dataset not found")

    def delete(self, dataset_id: str) -> db_models.Dataset:
        with self._cursor() as cur:
            cur.execute(
                "DELETE FROM datasets WHERE id = %s RETURNING *",
                (dataset_id,),
            )
            row = cur.fetchone()
        if row is None:
            raise errors.NotFoundError("Dataset not found")
        return self._from_row(dict(row))

    @staticmethod
    def _to_row(dataset: db_models.Dataset) -> dict[str, object]:
        return {
            "id": dataset.id,
            "name": dataset.name,
            "type": dataset.type,
            "record_count": dataset.record_count,
            "storage_key": dataset.storage_key,
            "schema_json": (
                json.dumps(dataset.schema, ensure_ascii=False)
                if dataset.schema is not None
                else None
            ),
            "status": dataset.status,
            "created_by": dataset.created_by,
            "created_at": dataset.created_at,
            "updated_at": dataset.updated_at,
        }

    @staticmethod
    def _from_row(row: dict[str, Any]) -> db_models.Dataset:
        schema_json = row.get("schema_json")
        return db_models.Dataset(
            id=str(row["id"]),
            name=str(row["name"]),
            type=row["type"],
            record_count=int(row["record_count"]),
            storage_key=row.get("storage_key"),
            schema=json.loads(schema_json) if schema_json else None,
            status=row["status"],
            created_by=str(row["created_by"]),
            created_at=_timestamp(row.get("created_at")),
            updated_at=_timestamp(row.get("updated_at")),
        )


class PostgresFeatureRepository(
    _PostgresRepository, database.FeatureRepositoryProtocol
):
    """Feature rows; ``seq`` records storage order for scans."""

    CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS features (
      seq BIGSERIAL,
      id TEXT PRIMARY KEY,
      dataset_id TEXT NOT NULL,
      geometry_type TEXT NOT NULL,
      min_lon DOUBLE PRECISION,
      min_lat DOUBLE PRECISION,
      max_lon DOUBLE PRECISION,
      max_lat DOUBLE PRECISION,
      properties_json TEXT NOT NULL DEFAULT '{}',
      created_at TIMESTAMPTZ DEFAULT now()
    );
    CREATE INDEX IF NOT EXISTS features_dataset_seq_idx
      ON features (dataset_id, seq);
    CREATE INDEX IF NOT EXISTS features_fts_idx
      ON features USING GIN (to_tsvector('simple', properties_json));
    """

    INSERT_SQL = """
    INSERT INTO features (
        id, dataset_id, geometry_type, min_lon, min_lat, max_lon, max_lat,
        properties_json, created_at
    ) VALUES %s
    """

    def add(self, feature: db_models.Feature) -> db_models.Feature:
        self.add_many([feature])
        return feature

    def add_many(self, features: Sequence[db_models.Feature]) -> int:
        """Insert features in order with one ``execute_values`` batch.

        Args:
            features: Rows to insert.

        Returns:
            Number of rows inserted.
        """
        if not features:
            return 0
        rows = [self._to_row(feature) for feature in features]
        with self._cursor() as cur:
            psycopg2.extras.execute_values(
                cur,
                self.INSERT_SQL,
                [
                    (
                        row["id"],
                        row["dataset_id"],
                        row["geometry_type"],
                        row["min_lon"],
                        row["min_lat"],
                        row["max_lon"],
                        row["max_lat"],
                        row["properties_json"],
                        row["created_at"],
                    )
                    for row in rows
                ],
            )
        return len(rows)

    def get(self, feature_id: str) -> db_models.Feature | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM features WHERE id = %s", (feature_id,))
            row = cur.fetchone()
        return None if row is None else self._from_row(dict(row))

    def scan(
        self,
        dataset_id: str,
        feature_filter: db_filters.FeatureFilter | None = None,
        limit: int | None = None,
    ) -> list[db_models.Feature]:
        """Select the dataset's features matching ``feature_filter``.

        Args:
            dataset_id: Dataset to scan.
            feature_filter: Predicates translated by ``filter_sql``.
            limit: Maximum number of rows, or None for no cap.

        Returns:
            Matching features ordered by ``seq`` (insertion order).
        """
        clauses, params = (
            filter_sql(feature_filter) if feature_filter else ([], [])
        )
        query = " AND ".join(["dataset_id = %s", *clauses])
        sql = f"SELECT * FROM features WHERE {query} ORDER BY seq"
        all_params: list[Any] = [dataset_id, *params]
        if limit is not None:
            sql += " LIMIT %s"
            all_params.append(limit)

        with self._cursor() as cur:
            cur.execute(sql, all_params)
            rows = cur.fetchall()
        return [self._from_row(dict(row)) for row in rows]

    def update(self, feature: db_models.Feature) -> db_models.Feature:
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE features SET
                    geometry_type = %(geometry_type)s,
                    min_lon = %(min_lon)s,
                    min_lat = %(min_lat)s,
                    max_lon = %(max_lon)s,
                    max_lat = %(max_lat)s,
                    properties_json = %(properties_json)s
                WHERE id = %(id)s
                """,
                self._to_row(feature),
            )
            if cur.rowcount == 0:
                raise errors.NotFoundError("Feature not found")
        return feature

    def delete(self, feature_id: str) -> db_models.Feature:
        """Delete a feature and return the removed row.

        Raises:
            NotFoundError: If no feature has this id.
        """
        with self._cursor() as cur:
            cur.execute(
                "DELETE FROM features WHERE id = %s RETURNING *",
                (feature_id,),
            )
            row = cur.fetchone()
        if row is None:
            raise errors.NotFoundError("Feature not found")
        return self._from_row(dict(row))

    def delete_by_dataset(self, dataset_id: str) -> int:
        with self._cursor() as cur:
            cur.execute(
                "DELETE FROM features WHERE dataset_id = %s",
                (dataset_id,),
            )
            return int(cur.rowcount)

    @staticmethod
    def _to_row(feature: db_models.Feature) -> dict[str, object]:
        bbox = feature.bbox or (None, None, None, None)
        return {
            "id": feature.id,
            "dataset_id": feature.dataset_id,
            "geometry_type": feature.geometry_type,
            "min_lon": bbox[0],
            "min_lat": bbox[1],
            "max_lon": bbox[2],
            "max_lat": bbox[3],
            "properties_json": feature.properties_json,
            "created_at": feature.created_at,
        }

    @staticmethod
    def _from_row(row: dict[str, Any]) -> db_models.Feature:
        return db_models.Feature(
            id=str(row["id"]),
            dataset_id=str(row["dataset_id"]),
            geometry_type=row["geometry_type"],
            bbox=_bbox_from_row(row),
            properties_json=str(row.get("properties_json") or "{}"),
            created_at=_timestamp(row.get("created_at")),
        )


class PostgresUserRepository(
    _PostgresRepository, database.UserRepositoryProtocol
):
    CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS users (
      id TEXT PRIMARY KEY,
      email TEXT NOT NULL UNIQUE,
      name TEXT NOT NULL,
      role TEXT NOT NULL DEFAULT 'viewer',
      password_hash TEXT NOT NULL,
      created_at TIMESTAMPTZ DEFAULT now(),
      updated_at TIMESTAMPTZ DEFAULT now()
    );
    CREATE TABLE IF NOT EXISTS user_preferences (
      user_id TEXT PRIMARY KEY,
      preferences_json TEXT NOT NULL,
      updated_at TIMESTAMPTZ DEFAULT now()
    );
    """

    def add(self, user: db_models.User) -> db_models.User:
        """Insert a user.

        Raises:
            ConflictError: If the email violates the unique constraint.
        """
        try:
            with self._cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO users (
                        id, email, name, role, password_hash,
                        created_at, updated_at
                    ) VALUES (%(id)s, %(email)s, %(name)s, %(role)s,
                        %(password_hash)s, %(created_at)s, %(updated_at)s)
                    """,
                    self._to_row(user),
                )
        except psycopg2.errors.UniqueViolation as exc:
            raise errors.ConflictError("Email is already registered") from exc
        return user

    def get(self, user_id: str) -> db_models.User | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM users WHERE id = %s", (user_id,))
            row = cur.fetchone()
        return None if row is None else self._from_row(dict(row))

    def get_by_email(self, email: str) -> db_models.User | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM users WHERE email = %s", (email,))
            row = cur.fetchone()
        return None if row is None else self._from_row(dict(row))

    def list(
        self,
        page: int,
        page_size: int,
    ) -> tuple[list[db_models.User], int]:
        with self._cursor() as cur:
            cur.execute("SELECT COUNT(*) AS count FROM users")
            count_row = cur.fetchone()
            total = int(count_row["count"]) if count_row else 0
            cur.execute(
                "SELECT * FROM users ORDER BY created_at DESC "
                "LIMIT %s OFFSET %s",
                (page_size, (page - 1) * page_size),
            )
            rows = cur.fetchall()
        return [self._from_row(dict(row)) for row in rows], total

    def update(self, user: db_models.User) -> db_models.User:
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE users SET
                    name = %(name)s,
                    role = %(role)s,
                    password_hash = %(password_hash)s,
                    updated_at = now()
                WHERE id = %(id)s
                RETURNING *
                """,
                self._to_row(user),
            )
            row = cur.fetchone()
        if row is None:
            raise errors.NotFoundError("User not found")
        return self._from_row(dict(row))

    def delete(self, user_id: str) -> None:
        with self._cursor() as cur:
            cur.execute("DELETE FROM users WHERE id = %s", (user_id,))
            if cur.rowcount == 0:
                raise errors.NotFoundError("User not found")
            cur.execute(
                "DELETE FROM user_preferences WHERE user_id = %s",
                (user_id,),
            )

    def get_preferences(self, user_id: str) -> dict[str, Any]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT preferences_json FROM user_preferences "
                "WHERE user_id = %s",
                (user_id,),
            )
            row = cur.fetchone()
        return json.loads(row["preferences_json"]) if row else {}

    def set_preferences(
        self,
        user_id: str,
        preferences: dict[str, Any],
    ) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO user_preferences (user_id, preferences_json)
                VALUES (%s, %s)
                ON CONFLICT (user_id) DO UPDATE SET
                    preferences_json = EXCLUDED.preferences_json,
                    updated_at = now()
                """,
                (user_id, json.dumps(preferences, ensure_ascii=False)),
            )

    @staticmethod
    def _to_row(user: db_models.User) -> dict[str, object]:
        return {
            "id": user.id,
            "email": user.email,
            "name": user.name,
            "role": user.role,
            "password_hash": user.password_hash,
            "created_at": user.created_at,
            "updated_at": user.updated_at,
        }

    @staticmethod
    def _from_row(row: dict[str, Any]) -> db_models.User:
        return db_models.User(
            id=str(row["id"]),
            email=str(row["email"]),
            name=str(row["name"]),
            role=row["role"],
            password_hash=str(row["password_hash"]),
            created_at=_timestamp(row.get("created_at")),
            updated_at=_timestamp(row.get("updated_at")),
        )


class PostgresStyleRepository(
    _PostgresRepository, database.StyleRepositoryProtocol
):
    CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS layer_styles (
      id TEXT PRIMARY KEY,
      dataset_id TEXT NOT NULL,
      name TEXT NOT NULL,
      style_json TEXT NOT NULL,
      is_default BOOLEAN NOT NULL DEFAULT false,
      created_by TEXT NOT NULL,
      created_at TIMESTAMPTZ DEFAULT now(),
      updated_at TIMESTAMPTZ DEFAULT now()
    );
    """

    def add(self, style: db_models.LayerStyle) -> db_models.LayerStyle:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO layer_styles (
                    id, dataset_id, name, style_json, is_default,
                    created_by, created_at, updated_at
                ) VALUES (%(id)s, %(dataset_id)s, %(name)s, %(style_json)s,
                    %(is_default)s, %(created_by)s, %(created_at)s,
                    %(updated_at)s)
                """,
                self._to_row(style),
            )
        return style

    def get(self, style_id: str) -> db_models.LayerStyle | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM layer_styles WHERE id = %s", (style_id,))
            row = cur.fetchone()
        return None if row is None else self._from_row(dict(row))

    def list_for_dataset(
        self,
        dataset_id: str,
    ) -> list[db_models.LayerStyle]:
        """Styles of a dataset, the default first and then newest first."""
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT * FROM layer_styles WHERE dataset_id = %s
                ORDER BY is_default DESC, created_at DESC
                """,
                (dataset_id,),
            )
            rows = cur.fetchall()
        return [self._from_row(dict(row)) for row in rows]

    def update(self, style: db_models.LayerStyle) -> db_models.LayerStyle:
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE layer_styles SET
                    name = %(name)s,
                    style_json = %(style_json)s,
                    is_default = %(is_default)s,
                    updated_at = now()
                WHERE id = %(id)s
                RETURNING *
                """,
                self._to_row(style),
            )
            row = cur.fetchone()
        if row is None:
            raise errors.NotFoundError("Style not found")
        return self._from_row(dict(row))

    def clear_default(self, dataset_id: str) -> None:
        with self._cursor() as cur:
            cur.execute(
                "UPDATE layer_styles SET is_default = false "
                "WHERE dataset_id = %s",
                (dataset_id,),
            )

    def delete(self, style_id: str) -> None:
        with self._cursor() as cur:
            cur.execute("DELETE FROM layer_styles WHERE id = %s", (style_id,))
            if cur.rowcount == 0:
                raise errors.NotFoundError("Style not found")

    def delete_by_dataset(self, dataset_id: str) -> int:
        with self._cursor() as cur:
            cur.execute(
                "DELETE FROM layer_styles WHERE dataset_id = %s",
                (dataset_id,),
            )
            return int(cur.rowcount)

    @staticmethod
    def _to_row(style: db_models.LayerStyle) -> dict[str, object]:
        return {
            "id": style.id,
            "dataset_id": style.dataset_id,
            "name": style.name,
            "style_json": json.dumps(style.style, ensure_ascii=False),
            "is_default": style.is_default,
            "created_by": style.created_by,
            "created_at": style.created_at,
            "updated_at": style.updated_at,
        }

    @staticmethod
    def _from_row(row: dict[str, Any]) -> db_models.LayerStyle:
        return db_models.LayerStyle(
            id=str(row["id"]),
            dataset_id=str(row["dataset_id"]),
            name=str(row["name"]),
            style=json.loads(row["style_json"]),
            is_default=bool(row["is_default"]),
            created_by=str(row["created_by"]),
            created_at=_timestamp(row.get("created_at")),
            updated_at=_timestamp(row.get("updated_at")),
        )

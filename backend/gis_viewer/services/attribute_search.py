"""Attribute search over serialized feature properties.

Filters work on the compact JSON text of each feature's properties:

- ``q`` is a case-insensitive substring of that text, or, in full-text
  mode, a set of tokens that must all appear as whole tokens.
- ``category`` is the literal fragment ``"category":"<value>"``; it is a
  text match, not a structured field comparison.
- ``minScore`` / ``maxScore`` compare the ``score`` property cast to an
  integer; features without a numeric score drop out when a bound is set.

All filters AND together. Results keep storage order and are capped.
"""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

from gis_viewer.core import errors
from gis_viewer.db import filters as db_filters
from gis_viewer.services import projection

if TYPE_CHECKING:
    from gis_viewer.db import database

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")


def search_features(
    features: database.FeatureRepositoryProtocol,
    dataset_id: str,
    limit: int,
    q: str | None = None,
    category: str | None = None,
    min_score: int | None = None,
    max_score: int | None = None,
    full_text: bool = False,
) -> dict[str, Any]:
    """Run a keyword/category/score search and return a FeatureCollection."""
    feature_filter = db_filters.FeatureFilter(
        text=q if q and not full_text else None,
        full_text=q if q and full_text else None,
        category=category or None,
        min_score=min_score,
        max_score=max_score,
    )
    return projection.to_feature_collection(
        features.scan(dataset_id, feature_filter, limit)
    )


def _validate_key(key: str) -> str:
    """Allow only alphanumerics and underscores in property keys.

    Raises:
        ValidationError: If the key contains any other character.
    """
    if not _KEY_PATTERN.match(key):
        raise errors.ValidationError(f"Invalid filter key: {key!r}")
    return key


def parse_attribute_filters(
    raw: str | None,
) -> tuple[db_filters.AttributeFilter, ...]:
    """Parse the ``filters`` JSON of an advanced search.

    Args:
        raw: JSON object mapping property key to ``{operator, value}``.

    Returns:
        Tuple of AttributeFilter in document order.

    Raises:
        ValidationError: If the JSON is malformed, a key is not a plain
            identifier, an operator is unknown, or a value does not fit its
            operator.
    """
    if not raw:
        return ()
    try:
        document = json.loads(raw)
    except ValueError as exc:
        raise errors.ValidationError("filters is not valid JSON") from exc
    if not isinstance(document, dict):
        raise errors.ValidationError("filters must be a JSON object")

    parsed: list[db_filters.AttributeFilter] = []
    for key, condition in document.items():
        if not isinstance(condition, dict):
            raise errors.ValidationError(f"Filter for {key!r} must be an object")
        operator = condition.get("operator")
        value = condition.get("value")
        if operator not in db_filters.ATTRIBUTE_OPERATORS:
            raise errors.ValidationError(f"Unknown operator: {operator!r}")
        if operator == "in" and not isinstance(value, list):
            raise errors.ValidationError("'in' filters need a list value")
        if operator in ("gt", "lt") and db_filters.as_number(value) is None:
            raise errors.ValidationError(
                f"'{operator}' filters need a numeric value"
            )
        parsed.append(
            db_filters.AttributeFilter(
                key=_validate_key(str(key)),
                operator=operator,
                value=value,
            )
        )
    return tuple(parsed)


def advanced_search(
    features: database.FeatureRepositoryProtocol,
    dataset_id: str,
    filters_json: str | None,
    limit: int,
) -> dict[str, Any]:
    """Run a per-attribute operator search and return a FeatureCollection."""
    feature_filter = db_filters.FeatureFilter(
        attributes=parse_attribute_filters(filters_json)
    )
    return projection.to_feature_collection(
        features.scan(dataset_id, feature_filter, limit)
    )

"""Feature scan predicates shared by every feature repository.

``FeatureFilter`` is the value object handed to
``FeatureRepositoryProtocol.scan``. All of its predicates are ANDed. The
in-memory repository evaluates it with ``FeatureFilter.matches``; the
PostgreSQL repository translates the same fields into SQL (see
``gis_viewer.db.postgres``), so both backends must agree with the Python
semantics defined here.

Example:
    Features overlapping a box whose category is "観光":
        >>> feature_filter = FeatureFilter(
        ...     bbox=(139.0, 35.0, 140.0, 36.0),
        ...     category="観光",
        ... )
"""

from __future__ import annotations

import dataclasses
import json
import math
import re
from typing import TYPE_CHECKING, Any, Literal

from gis_viewer.services import geometry

if TYPE_CHECKING:
    from gis_viewer.db import models as db_models

AttributeOperator = Literal["eq", "gt", "lt", "like", "in"]
ATTRIBUTE_OPERATORS: tuple[str, ...] = ("eq", "gt", "lt", "like", "in")

NUMERIC_TEXT = re.compile(r"^-?[0-9]+(\.[0-9]+)?$")
_TOKEN = re.compile(r"\w+")


def category_fragment(category: str) -> str:
    """Literal text the category filter looks for in the serialized blob."""
    return f'"category":"{category}"'


def tokenize(text: str) -> set[str]:
    return {token.casefold() for token in _TOKEN.findall(text)}


def as_number(value: Any) -> float | None:
    """Read a JSON value as a number; numeric strings count, booleans don't."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str) and NUMERIC_TEXT.match(value):
        return float(value)
    return None


def as_text(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value)


def extract_score(properties: dict[str, Any]) -> int | None:
    """The ``score`` property cast to an integer (truncated), if numeric."""
    number = as_number(properties.get("score"))
    return None if number is None else math.trunc(number)


@dataclasses.dataclass(frozen=True)
class AttributeFilter:
    """One ``{key: {operator, value}}`` entry of an advanced search."""

    key: str
    operator: AttributeOperator
    value: Any

    def matches(self, properties: dict[str, Any]) -> bool:
        if self.key not in properties:
            return False
        actual = properties[self.key]

        if self.operator == "eq":
            return actual == self.value
        if self.operator == "in":
            return actual in self.value
        if self.operator == "like":
            return str(self.value).casefold() in as_text(actual).casefold()

        number = as_number(actual)
        if number is None:
            return False
        if self.operator == "gt":
            return number > float(self.value)
        return number < float(self.value)


@dataclasses.dataclass(frozen=True)
class FeatureFilter:
    """AND-combined predicates for a dataset scan.

    Attributes:
        bbox: Keep features whose bbox overlaps this box (inclusive).
        within: Keep features whose bbox lies inside this box (inclusive).
        text: Case-insensitive substring of the serialized properties.
        full_text: Every token must be a token of the serialized properties.
        category: Case-insensitive substring ``"category":"<value>"``.
        min_score: Lower bound on the integer ``score`` property.
        max_score: Upper bound on the integer ``score`` property.
        attributes: Advanced per-property filters.
    """

    bbox: db_models.BBox | None = None
    within: db_models.BBox | None = None
    text: str | None = None
    full_text: str | None = None
    category: str | None = None
    min_score: int | None = None
    max_score: int | None = None
    attributes: tuple[AttributeFilter, ...] = ()

    def matches(self, feature: db_models.Feature) -> bool:
        if self.bbox is not None and not geometry.bbox_overlaps(
            feature.bbox, self.bbox
        ):
            return False
        if self.within is not None and not geometry.bbox_within(
            feature.bbox, self.within
        ):
            return False

        blob = feature.properties_json.casefold()
        if self.text and self.text.casefold() not in blob:
            return False
        if self.full_text and not tokenize(self.full_text) <= tokenize(blob):
            return False
        if (
            self.category
            and category_fragment(self.category).casefold() not in blob
        ):
            return False

        if not self._needs_properties():
            return True

        properties = feature.properties
        if self.min_score is not None or self.max_score is not None:
            score = extract_score(properties)
            if score is None:
                return False
            if self.min_score is not None and score < self.min_score:
                return False
            if self.max_score is not None and score > self.max_score:
                return False

        return all(attr.matches(properties) for attr in self.attributes)

    def _needs_properties(self) -> bool:
        return (
            self.min_score is not None
            or self.max_score is not None
            or bool(self.attributes)
        )

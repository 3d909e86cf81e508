"""Spatial query construction for an equality-only document store.

The store has no radius or range filters, so a proximity search is expressed
as membership of the provider's stored geohash in the request's neighborhood
keys, conjoined with plain equality filters.
"""

from __future__ import annotations

import enum
import math
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from geodispatch.config import ProviderSchema, SearchConfig
from geodispatch.exceptions import ValidationError


class Operator(enum.Enum):
    """Supported predicate operators, declared cheapest first."""

    EQUALS = "EQUAL"
    ARRAY_CONTAINS = "ARRAY_CONTAINS"
    IN = "IN"

    @property
    def cost(self) -> int:
        return _OPERATOR_COST[self]


_OPERATOR_COST: dict[Operator, int] = {
    Operator.EQUALS: 0,
    Operator.ARRAY_CONTAINS: 1,
    Operator.IN: 2,
}


class Predicate(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str = Field(min_length=1)
    operator: Operator
    value: Any


class SpatialQuery(BaseModel):
    """An immutable conjunction of predicates over one collection."""

    model_config = ConfigDict(frozen=True)

    collection: str
    predicates: tuple[Predicate, ...]
    limit: int | None = None

    def predicate_for(self, field: str) -> Predicate | None:
        for predicate in self.predicates:
            if predicate.field == field:
                return predicate
        return None

    def to_structured_query(self) -> dict[str, Any]:
        """Render the Firestore ``structuredQuery`` body."""
        filters = [
            {
                "fieldFilter": {
                    "field": {"fieldPath": predicate.field},
                    "op": predicate.operator.value,
                    "value": encode_value(predicate.value),
                }
            }
            for predicate in self.predicates
        ]
        structured: dict[str, Any] = {"from": [{"collectionId": self.collection}]}
        if len(filters) == 1:
            structured["where"] = filters[0]
        elif filters:
            structured["where"] = {"compositeFilter": {"op": "AND", "filters": filters}}
        if self.limit is not None:
            structured["limit"] = self.limit
        return {"structuredQuery": structured}


def encode_value(value: Any) -> dict[str, Any]:
    """Encode a Python value as a Firestore typed ``Value``."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        # Firestore transports int64 as a decimal string.
        return {"integerValue": str(value)}
    if isinstance(value, float):
        if math.isnan(value):
            return {"doubleValue": "NaN"}
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, Mapping):
        return {"mapValue": {"fields": {str(k): encode_value(v) for k, v in value.items()}}}
    if isinstance(value, (list, tuple, frozenset, set)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    raise TypeError(f"Cannot encode {type(value).__name__} as a Firestore value")


def decode_value(value: Mapping[str, Any]) -> Any:
    """Decode a Firestore typed ``Value`` into a plain Python value."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "stringValue" in value:
        return str(value["stringValue"])
    if "timestampValue" in value:
        return str(value["timestampValue"])
    if "referenceValue" in value:
        return str(value["referenceValue"])
    if "bytesValue" in value:
        return str(value["bytesValue"])
    if "geoPointValue" in value:
        point = value["geoPointValue"] or {}
        return {"latitude": point.get("latitude", 0.0), "longitude": point.get("longitude", 0.0)}
    if "arrayValue" in value:
        items = (value["arrayValue"] or {}).get("values") or []
        return [decode_value(item) for item in items]
    if "mapValue" in value:
        return decode_fields((value["mapValue"] or {}).get("fields") or {})
    return None


def decode_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {name: decode_value(raw) for name, raw in fields.items() if isinstance(raw, Mapping)}


def _unique(keys: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for key in keys:
        if key:
            seen.setdefault(key, None)
    return list(seen)


class SpatialQueryBuilder:
    """Build provider queries from a neighborhood and a service type."""

    def __init__(
        self,
        schema: ProviderSchema | None = None,
        search: SearchConfig | None = None,
    ) -> None:
        self._schema = schema or ProviderSchema()
        self._search = search or SearchConfig()

    @property
    def in_limit(self) -> int:
        return self._search.in_predicate_limit

    def build(
        self,
        keys: Sequence[str],
        service_type: str,
        extra_filters: Iterable[Predicate] = (),
    ) -> SpatialQuery:
        """Build the provider query.

        *keys* are deduplicated and then truncated to the store's ``IN``
        limit, keeping their order, so the first keys (the center cell
        first, as produced by the expander) always survive.

        Raises
        ------
        ValidationError
            If no spatial key or no service type is given.
        """
        unique_keys = _unique(keys)
        if not unique_keys:
            raise ValidationError("at least one spatial key is required")
        if not service_type:
            raise ValidationError("service type is required")
        if len(unique_keys) > self.in_limit:
            unique_keys = unique_keys[: self.in_limit]

        predicates: list[Predicate] = []
        if self._schema.availability_field:
            predicates.append(Predicate(field=self._schema.availability_field, operator=Operator.EQUALS, value=True))
        predicates.append(
            Predicate(field=self._schema.services_field, operator=Operator.ARRAY_CONTAINS, value=service_type)
        )
        predicates.extend(extra_filters)
        predicates.append(Predicate(field=self._schema.geohash_field, operator=Operator.IN, value=tuple(unique_keys)))

        for predicate in predicates:
            if predicate.operator is Operator.IN and len(predicate.value) > self.in_limit:
                raise ValidationError(
                    f"IN filter on {predicate.field} has {len(predicate.value)} values, limit is {self.in_limit}"
                )

        # sorted() is stable, so filters keep their insertion order per operator.
        ordered = tuple(sorted(predicates, key=lambda p: p.operator.cost))
        return SpatialQuery(
            collection=self._schema.collection,
            predicates=ordered,
            limit=self._search.max_providers,
        )

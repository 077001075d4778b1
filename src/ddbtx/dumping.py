from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from .errors import ValidationError
from .model import AttributeDefinition, ModelDefinition


def _storable(value: Any) -> Any:
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, datetime):
        return Decimal(str(value.timestamp()))
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, Mapping):
        return {k: _storable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_storable(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return {_storable(v) for v in value}
    return value


def dump_attribute(attr_def: AttributeDefinition, value: Any) -> Any:
    if attr_def.converter is not None and value is not None:
        value = attr_def.converter.to_dynamodb(value)

    if attr_def.set and isinstance(value, (list, tuple, frozenset)):
        value = set(value)

    if attr_def.json and value is not None:
        value = json.dumps(value, separators=(",", ":"), sort_keys=True, default=str)

    return _storable(value)


def dump_attributes(attributes: Mapping[str, Any], model: ModelDefinition[Any]) -> dict[str, Any]:
    """Dump python-named attribute values into a map keyed by stored attribute names.

    Order follows ``attributes``.
    """
    out: dict[str, Any] = {}
    for name, value in attributes.items():
        attr_def = model.attributes.get(name)
        if attr_def is None:
            raise ValidationError(f"unknown field: {name}")
        out[attr_def.attribute_name] = dump_attribute(attr_def, value)
    return out


def sanitize_item(item: Mapping[str, Any], *, store_attribute_with_nil_value: bool = False) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for name, value in item.items():
        if isinstance(value, (set, frozenset, str)) and len(value) == 0:
            continue
        if value is None and not store_attribute_with_nil_value:
            continue
        if isinstance(value, Mapping):
            value = {str(k): v for k, v in value.items()}
        out[name] = value
    return out

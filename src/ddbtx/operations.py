from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class PutOperation:
    table_name: str
    item: Mapping[str, Any]
    condition_expression: str | None = None

    def to_request(self) -> dict[str, Any]:
        req: dict[str, Any] = {"item": dict(self.item), "table_name": self.table_name}
        if self.condition_expression:
            req["condition_expression"] = self.condition_expression
        return {"put": req}


@dataclass(frozen=True)
class UpdateOperation:
    table_name: str
    key: Mapping[str, Any]
    update_expression: str
    expression_attribute_values: Mapping[str, Any]
    expression_attribute_names: Mapping[str, str] | None = None

    def to_request(self) -> dict[str, Any]:
        req: dict[str, Any] = {
            "key": dict(self.key),
            "table_name": self.table_name,
            "update_expression": self.update_expression,
        }
        if self.expression_attribute_values:
            req["expression_attribute_values"] = dict(self.expression_attribute_values)
        if self.expression_attribute_names:
            req["expression_attribute_names"] = dict(self.expression_attribute_names)
        return {"update": req}


@dataclass(frozen=True)
class DeleteOperation:
    table_name: str
    key: Mapping[str, Any]

    def to_request(self) -> dict[str, Any]:
        return {"delete": {"key": dict(self.key), "table_name": self.table_name}}


type WireOperation = PutOperation | UpdateOperation | DeleteOperation

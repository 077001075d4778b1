from __future__ import annotations

import copy
import json
from collections.abc import Mapping
from dataclasses import MISSING, fields
from typing import Any, cast

from .errors import ValidationError
from .model import ModelDefinition


def _field_defaults(model: ModelDefinition[Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for dc_field in fields(cast(Any, model.model_type)):
        if dc_field.name not in model.attributes:
            continue
        if dc_field.default is not MISSING:
            out[dc_field.name] = dc_field.default
        elif dc_field.default_factory is not MISSING:
            out[dc_field.name] = dc_field.default_factory()
    return out


class Record[T]:
    """A model instance with dirty tracking.

    Values are keyed by the dataclass field (python) name. The snapshot taken at
    load time, or after the last successful write, is what ``changes()`` compares
    against; a new record compares against an empty snapshot.
    """

    def __init__(
        self,
        model: ModelDefinition[T],
        attributes: Mapping[str, Any] | None = None,
        *,
        new_record: bool = True,
    ) -> None:
        self._model = model
        self._values: dict[str, Any] = {name: None for name in model.attributes}
        self._values.update(_field_defaults(model))
        self._original: dict[str, Any] = {} if new_record else copy.deepcopy(self._values)
        self._order: dict[str, None] = {}
        self._new_record = new_record
        self._destroyed = False
        self.errors: list[str] = []

        for name, value in (attributes or {}).items():
            self[name] = value

        if not new_record:
            self.changes_applied()

    @classmethod
    def from_instance(cls, model: ModelDefinition[T], instance: T, *, new_record: bool = True) -> Record[T]:
        if not isinstance(instance, model.model_type):
            raise ValidationError(f"expected {model.model_type.__name__} instance")
        attrs = {name: getattr(instance, name) for name in model.attributes if hasattr(instance, name)}
        return cls(model, attrs, new_record=new_record)

    @classmethod
    def persisted_from(cls, model: ModelDefinition[T], attributes: Mapping[str, Any]) -> Record[T]:
        """Build a persisted record from values keyed by field (python) names."""
        return cls(model, attributes, new_record=False)

    @classmethod
    def from_item(cls, model: ModelDefinition[T], item: Mapping[str, Any]) -> Record[T]:
        """Build a persisted record from a store item keyed by attribute names."""
        by_storage = {attr.attribute_name: attr for attr in model.attributes.values()}
        attrs: dict[str, Any] = {}
        for storage_name, raw in item.items():
            attr_def = by_storage.get(storage_name)
            if attr_def is None:
                continue
            value = raw
            if attr_def.json and isinstance(value, str):
                value = json.loads(value)
            if attr_def.converter is not None and value is not None:
                value = attr_def.converter.from_dynamodb(value)
            attrs[attr_def.python_name] = value
        return cls(model, attrs, new_record=False)

    @property
    def model(self) -> ModelDefinition[T]:
        return self._model

    def __getitem__(self, name: str) -> Any:
        if name not in self._values:
            raise KeyError(name)
        return self._values[name]

    def __setitem__(self, name: str, value: Any) -> None:
        if name not in self._model.attributes:
            raise ValidationError(f"unknown field: {name}")
        self._values[name] = value
        self._order.setdefault(name, None)

    def get(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    @property
    def attributes(self) -> dict[str, Any]:
        return dict(self._values)

    @property
    def hash_key(self) -> Any:
        return self._values[self._model.pk.python_name]

    @hash_key.setter
    def hash_key(self, value: Any) -> None:
        self[self._model.pk.python_name] = value

    @property
    def range_key(self) -> Any:
        if self._model.sk is None:
            return None
        return self._values[self._model.sk.python_name]

    @property
    def new_record(self) -> bool:
        return self._new_record

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def persisted(self) -> bool:
        return not (self._new_record or self._destroyed)

    def changes(self) -> dict[str, tuple[Any, Any]]:
        """Changed attributes as ``name -> (old, new)`` in first-change order."""
        out: dict[str, tuple[Any, Any]] = {}
        ordered = list(self._order) + [name for name in self._values if name not in self._order]
        for name in ordered:
            old = self._original.get(name)
            new = self._values[name]
            if old != new:
                out[name] = (old, new)
        return out

    @property
    def changed(self) -> bool:
        return bool(self.changes())

    def changes_applied(self) -> None:
        self._original = copy.deepcopy(self._values)
        self._order = {}

    def mark_persisted(self) -> None:
        self._new_record = False

    def mark_destroyed(self) -> None:
        self._destroyed = True

    def valid(self) -> bool:
        self.errors = self._model.hooks.validate(self)
        return not self.errors

    def to_instance(self) -> T:
        kwargs = {
            dc_field.name: self._values[dc_field.name]
            for dc_field in fields(cast(Any, self._model.model_type))
            if dc_field.name in self._values and dc_field.init
        }
        try:
            return self._model.model_type(**kwargs)
        except TypeError as err:
            raise ValidationError(str(err)) from err

    def __repr__(self) -> str:
        state = "new" if self._new_record else ("destroyed" if self._destroyed else "persisted")
        return f"Record({self._model.model_type.__name__}, {state}, {self._values!r})"

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import MISSING, dataclass, field, fields, is_dataclass
from typing import Any, Protocol, cast, overload

from .hooks import ModelHooks

CREATED_AT = "created_at"
UPDATED_AT = "updated_at"


class ModelDefinitionError(ValueError):
    pass


class AttributeConverter(Protocol):
    def to_dynamodb(self, value: Any) -> Any: ...

    def from_dynamodb(self, value: Any) -> Any: ...


@dataclass(frozen=True)
class AttributeDefinition:
    python_name: str
    attribute_name: str
    roles: tuple[str, ...]
    set: bool
    json: bool
    converter: AttributeConverter | None = None


@overload
def ddb_field(
    *,
    name: str | None = None,
    roles: Sequence[str] | None = None,
    set_: bool = False,
    json: bool = False,
    converter: AttributeConverter | None = None,
    ignore: bool = False,
) -> Any: ...


@overload
def ddb_field(
    *,
    name: str | None = None,
    roles: Sequence[str] | None = None,
    set_: bool = False,
    json: bool = False,
    converter: AttributeConverter | None = None,
    ignore: bool = False,
    default: Any,
) -> Any: ...


@overload
def ddb_field(
    *,
    name: str | None = None,
    roles: Sequence[str] | None = None,
    set_: bool = False,
    json: bool = False,
    converter: AttributeConverter | None = None,
    ignore: bool = False,
    default_factory: Any,
) -> Any: ...


def ddb_field(
    *,
    name: str | None = None,
    roles: Sequence[str] | None = None,
    set_: bool = False,
    json: bool = False,
    converter: AttributeConverter | None = None,
    ignore: bool = False,
    default: Any = MISSING,
    default_factory: Any = MISSING,
) -> Any:
    if default is not MISSING and default_factory is not MISSING:
        raise ValueError("ddb_field: cannot set both default and default_factory")

    opts: dict[str, Any] = {
        "set": set_,
        "json": json,
        "converter": converter,
        "ignore": ignore,
    }
    if name is not None:
        opts["name"] = name
    if roles is not None:
        opts["roles"] = list(roles)

    return field(default=default, default_factory=default_factory, metadata={"ddbtx": opts})


@dataclass(frozen=True)
class ModelDefinition[T]:
    model_type: type[T]
    table_name: str
    pk: AttributeDefinition
    sk: AttributeDefinition | None
    attributes: Mapping[str, AttributeDefinition]
    timestamps: bool = False
    hooks: ModelHooks = field(default_factory=ModelHooks, compare=False)

    @property
    def hash_key_name(self) -> str:
        return self.pk.attribute_name

    @property
    def range_key_name(self) -> str | None:
        return self.sk.attribute_name if self.sk is not None else None

    @property
    def range_key(self) -> bool:
        return self.sk is not None

    @property
    def timestamps_enabled(self) -> bool:
        return self.timestamps

    def is_key(self, python_name: str) -> bool:
        if python_name == self.pk.python_name:
            return True
        return self.sk is not None and python_name == self.sk.python_name

    @classmethod
    def from_dataclass(
        cls,
        model_type: type[T],
        *,
        table_name: str | None = None,
        timestamps: bool = False,
        hooks: ModelHooks | None = None,
    ) -> ModelDefinition[T]:
        if not is_dataclass(model_type):
            raise ModelDefinitionError("model_type must be a dataclass")
        if not table_name:
            raise ModelDefinitionError("table_name is required")

        attributes: dict[str, AttributeDefinition] = {}
        pk_fields: list[str] = []
        sk_fields: list[str] = []
        storage_names: set[str] = set()

        for dc_field in fields(model_type):
            opts = cast(dict[str, Any], dc_field.metadata.get("ddbtx", {}))
            if bool(opts.get("ignore", False)):
                continue

            roles = tuple(cast(list[str], opts.get("roles", [])))
            if "pk" in roles:
                pk_fields.append(dc_field.name)
            if "sk" in roles:
                sk_fields.append(dc_field.name)

            attribute_name = cast(str, opts.get("name", dc_field.name))
            if attribute_name in storage_names:
                raise ModelDefinitionError(f"duplicate attribute name: {attribute_name}")
            storage_names.add(attribute_name)

            attributes[dc_field.name] = AttributeDefinition(
                python_name=dc_field.name,
                attribute_name=attribute_name,
                roles=roles,
                set=bool(opts.get("set", False)),
                json=bool(opts.get("json", False)),
                converter=cast(AttributeConverter | None, opts.get("converter")),
            )

        if len(pk_fields) != 1:
            raise ModelDefinitionError(f"model must define exactly one pk field (found {len(pk_fields)})")

        if len(sk_fields) > 1:
            raise ModelDefinitionError(f"model must define at most one sk field (found {len(sk_fields)})")

        if timestamps:
            for name in (CREATED_AT, UPDATED_AT):
                if name in attributes:
                    continue
                if name in storage_names:
                    raise ModelDefinitionError(f"timestamp attribute name is already taken: {name}")
                attributes[name] = AttributeDefinition(
                    python_name=name, attribute_name=name, roles=(), set=False, json=False
                )

        pk = attributes[pk_fields[0]]
        sk = attributes[sk_fields[0]] if sk_fields else None

        return cls(
            model_type=model_type,
            table_name=table_name,
            pk=pk,
            sk=sk,
            attributes=attributes,
            timestamps=timestamps,
            hooks=hooks or ModelHooks(),
        )

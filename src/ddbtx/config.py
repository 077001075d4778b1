from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any

import yaml

from .errors import ValidationError

MAX_TRANSACTION_ACTIONS = 100

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValidationError(f"{name}: expected a boolean, got {raw!r}")


@dataclass(frozen=True)
class TransactionConfig:
    store_attribute_with_nil_value: bool = False
    max_actions: int = MAX_TRANSACTION_ACTIONS
    namespace: str | None = None

    def __post_init__(self) -> None:
        if self.max_actions <= 0:
            raise ValidationError("max_actions must be > 0")
        if self.max_actions > MAX_TRANSACTION_ACTIONS:
            raise ValidationError(f"a transaction supports at most {MAX_TRANSACTION_ACTIONS} actions")

    def table_name(self, name: str) -> str:
        if self.namespace:
            return f"{self.namespace}_{name}"
        return name

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> TransactionConfig:
        kwargs: dict[str, Any] = {}
        raw = environ.get("DDBTX_STORE_ATTRIBUTE_WITH_NIL_VALUE")
        if raw is not None:
            kwargs["store_attribute_with_nil_value"] = _parse_bool(
                "DDBTX_STORE_ATTRIBUTE_WITH_NIL_VALUE", raw
            )
        raw = environ.get("DDBTX_MAX_ACTIONS")
        if raw is not None:
            try:
                kwargs["max_actions"] = int(raw)
            except ValueError as err:
                raise ValidationError(f"DDBTX_MAX_ACTIONS: expected an integer, got {raw!r}") from err
        namespace = (environ.get("DDBTX_NAMESPACE") or "").strip()
        if namespace:
            kwargs["namespace"] = namespace
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, raw: str) -> TransactionConfig:
        try:
            parsed = yaml.safe_load(raw)
        except Exception as err:
            raise ValidationError("invalid config YAML") from err

        if parsed is None:
            return cls()
        if not isinstance(parsed, dict):
            raise ValidationError("config document must be a map/object")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(parsed).difference(known))
        if unknown:
            raise ValidationError(f"unknown config keys: {unknown}")

        if "store_attribute_with_nil_value" in parsed and not isinstance(
            parsed["store_attribute_with_nil_value"], bool
        ):
            raise ValidationError("store_attribute_with_nil_value must be a boolean")
        if "max_actions" in parsed and (
            isinstance(parsed["max_actions"], bool) or not isinstance(parsed["max_actions"], int)
        ):
            raise ValidationError("max_actions must be an integer")
        if parsed.get("namespace") is not None and not isinstance(parsed["namespace"], str):
            raise ValidationError("namespace must be a string")

        return cls(**parsed)

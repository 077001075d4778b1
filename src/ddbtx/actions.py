"""Per-record units of work registered into a write transaction.

Every action follows the same lifecycle, driven by ``TransactionWrite``:
``on_registration`` validates and runs before-hooks, ``action_request``
translates the action into one wire operation, and exactly one of
``on_completing`` (store accepted the batch) or ``on_rollback`` (store rejected
it) runs afterwards. The coordinator drives completion in two passes:
``apply_completion`` for every action, then ``run_completion_hooks``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from .config import TransactionConfig
from .dumping import dump_attribute, dump_attributes, sanitize_item
from .errors import (
    DocumentNotValid,
    MissingHashKey,
    MissingRangeKey,
    RecordNotDestroyed,
    RecordNotSaved,
    ValidationError,
)
from .keys import KeyGenerator
from .model import CREATED_AT, UPDATED_AT, AttributeDefinition, ModelDefinition
from .operations import DeleteOperation, PutOperation, UpdateOperation, WireOperation
from .record import Record

logger = logging.getLogger(__name__)

ActionState = Literal["pending", "aborted", "ready", "committed", "rolled_back"]


@dataclass(frozen=True)
class ActionOptions:
    raise_error: bool = False
    validate: bool = True
    touch: bool = True


@dataclass(frozen=True)
class ActionContext:
    config: TransactionConfig
    key_generator: KeyGenerator
    clock: Callable[[], datetime]


class Action:
    def __init__(self, options: ActionOptions | None = None) -> None:
        self.options = options or ActionOptions()
        self._context: ActionContext | None = None
        self._state: ActionState = "pending"
        self._aborted = False
        self._owner: object | None = None

    @property
    def state(self) -> ActionState:
        return self._state

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def skipped(self) -> bool:
        return False

    def claim(self, owner: object) -> None:
        if self._owner is not None and self._owner is not owner:
            raise ValidationError(f"{type(self).__name__} already belongs to another transaction")
        self._owner = owner

    def on_registration(self, context: ActionContext) -> None:
        if self._context is not None:
            raise ValidationError(f"{type(self).__name__} is already registered")
        self._context = context
        try:
            self._register(context)
        except Exception:
            self._state = "aborted"
            raise
        self._state = "aborted" if self.aborted else "ready"

    def action_request(self) -> WireOperation:
        if self._context is None:
            raise ValidationError(f"{type(self).__name__} is not registered")
        if self.aborted:
            raise ValidationError(f"{type(self).__name__} was aborted and has no request")
        return self._request(self._context)

    def on_completing(self) -> None:
        self.apply_completion()
        self.run_completion_hooks()

    def apply_completion(self) -> None:
        """Record the outcome of an accepted write on the target, without running hooks."""
        if self.aborted:
            return
        self._apply()
        self._state = "committed"

    def run_completion_hooks(self) -> None:
        if self.aborted:
            return
        self._after_commit()

    def on_rollback(self) -> None:
        self._rollback()
        self._state = "rolled_back"

    def observable_by_user_result(self) -> Any:
        raise NotImplementedError

    def _register(self, context: ActionContext) -> None:
        raise NotImplementedError

    def _request(self, context: ActionContext) -> WireOperation:
        raise NotImplementedError

    def _apply(self) -> None:
        return None

    def _after_commit(self) -> None:
        return None

    def _rollback(self) -> None:
        return None


def _options(options: ActionOptions | None, **overrides: Any) -> ActionOptions:
    if options is not None:
        if overrides:
            raise ValidationError("pass either options or keyword options, not both")
        return options
    return ActionOptions(**overrides)


def _dump_key(
    model: ModelDefinition[Any], hash_key: Any, range_key: Any | None
) -> dict[str, Any]:
    key: dict[str, Any] = {model.hash_key_name: dump_attribute(model.pk, hash_key)}
    if model.sk is not None:
        key[model.sk.attribute_name] = dump_attribute(model.sk, range_key)
    return key


class Save(Action):
    """Insert a new record or update the changed attributes of a persisted one."""

    def __init__(self, record: Record[Any], *, options: ActionOptions | None = None, **kwargs: Any) -> None:
        super().__init__(_options(options, **kwargs))
        self.record = record
        self._model = record.model
        self._was_new_record = record.new_record
        self._skipped = False

    @property
    def skipped(self) -> bool:
        return self._skipped

    def _register(self, context: ActionContext) -> None:
        self._validate_keys()

        if self.options.validate and not self.record.valid():
            if self.options.raise_error:
                raise DocumentNotValid(self.record)
            logger.debug("save aborted by validation: %s", self.record.errors)
            self._aborted = True
            return

        kind = "create" if self._was_new_record else "update"
        if not self._model.hooks.run_before(("save", kind), self.record):
            self._aborted = True
            if self.options.raise_error:
                raise RecordNotSaved(self.record)
            logger.debug("save aborted by a before-%s hook", kind)
            return

        if self._was_new_record and self.record.hash_key is None:
            self.record.hash_key = context.key_generator.new_key()

        self._skipped = not self._was_new_record and not self._changed_attributes()
        if not self._skipped:
            self._touch_timestamps(context.clock())

    def _validate_keys(self) -> None:
        if not self._was_new_record and self.record.hash_key is None:
            raise MissingHashKey()
        if self._model.range_key and self.record.range_key is None:
            raise MissingRangeKey()

    def _touch_timestamps(self, now: datetime) -> None:
        if not self._model.timestamps_enabled:
            return
        if self._was_new_record or self.options.touch:
            self.record[UPDATED_AT] = now
        if self._was_new_record and self.record.get(CREATED_AT) is None:
            self.record[CREATED_AT] = now

    def _changed_attributes(self) -> dict[str, Any]:
        return {
            name: new for name, (_, new) in self.record.changes().items() if not self._model.is_key(name)
        }

    def _request(self, context: ActionContext) -> WireOperation:
        table_name = context.config.table_name(self._model.table_name)
        if self._was_new_record:
            return self._request_to_create(table_name, context.config)
        return self._request_to_update(table_name)

    def _request_to_create(self, table_name: str, config: TransactionConfig) -> PutOperation:
        item = dump_attributes(self.record.attributes, self._model)

        condition = f"attribute_not_exists({self._model.hash_key_name})"
        if self._model.range_key_name is not None:
            condition += f" and attribute_not_exists({self._model.range_key_name})"

        return PutOperation(
            table_name=table_name,
            item=sanitize_item(item, store_attribute_with_nil_value=config.store_attribute_with_nil_value),
            condition_expression=condition,
        )

    def _request_to_update(self, table_name: str) -> UpdateOperation:
        item = dump_attributes(self._changed_attributes(), self._model)
        if not item:
            raise ValidationError("no updates provided")

        names: dict[str, str] = {}
        values: dict[str, Any] = {}
        set_parts: list[str] = []
        remove_parts: list[str] = []
        for i, (attribute_name, value) in enumerate(item.items()):
            names[f"#_n{i}"] = attribute_name
            # DynamoDB rejects empty sets; emptying a set attribute removes it.
            if isinstance(value, (set, frozenset)) and not value:
                remove_parts.append(f"#_n{i}")
                continue
            values[f":_s{i}"] = value
            set_parts.append(f"#_n{i} = :_s{i}")

        clauses: list[str] = []
        if set_parts:
            clauses.append("SET " + ", ".join(set_parts))
        if remove_parts:
            clauses.append("REMOVE " + ", ".join(remove_parts))

        return UpdateOperation(
            table_name=table_name,
            key=_dump_key(self._model, self.record.hash_key, self.record.range_key),
            update_expression=" ".join(clauses),
            expression_attribute_values=values,
            expression_attribute_names=names,
        )

    def _apply(self) -> None:
        self.record.changes_applied()
        if self._was_new_record:
            self.record.mark_persisted()

    def _after_commit(self) -> None:
        kind = "create" if self._was_new_record else "update"
        self._model.hooks.run_after((kind, "save"), self.record)
        self._model.hooks.run_after(("commit",), self.record)

    def _rollback(self) -> None:
        self._model.hooks.run_after(("rollback",), self.record)

    def observable_by_user_result(self) -> bool:
        return not self._aborted


class Create(Action):
    """Build a new record from attributes and insert it, refusing to overwrite."""

    def __init__(
        self,
        model: ModelDefinition[Any],
        attributes: Mapping[str, Any] | Any | None = None,
        *,
        options: ActionOptions | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(_options(options, **kwargs))
        if attributes is None or isinstance(attributes, Mapping):
            self.record: Record[Any] = Record(model, attributes)
        else:
            self.record = Record.from_instance(model, attributes)
        self._save = Save(self.record, options=self.options)

    @property
    def aborted(self) -> bool:
        return self._save.aborted

    def _register(self, context: ActionContext) -> None:
        self._save.on_registration(context)

    def _request(self, context: ActionContext) -> WireOperation:
        return self._save.action_request()

    def _apply(self) -> None:
        self._save.apply_completion()

    def _after_commit(self) -> None:
        self._save.run_completion_hooks()

    def _rollback(self) -> None:
        self._save.on_rollback()

    def observable_by_user_result(self) -> Record[Any]:
        return self.record


class Destroy(Action):
    def __init__(self, record: Record[Any], *, options: ActionOptions | None = None, **kwargs: Any) -> None:
        super().__init__(_options(options, **kwargs))
        self.record = record
        self._model = record.model

    def _register(self, context: ActionContext) -> None:
        if self.record.hash_key is None:
            raise MissingHashKey()
        if self._model.range_key and self.record.range_key is None:
            raise MissingRangeKey()

        if not self._model.hooks.run_before(("destroy",), self.record):
            self._aborted = True
            if self.options.raise_error:
                raise RecordNotDestroyed(self.record)
            logger.debug("destroy aborted by a before-destroy hook")

    def _request(self, context: ActionContext) -> WireOperation:
        return DeleteOperation(
            table_name=context.config.table_name(self._model.table_name),
            key=_dump_key(self._model, self.record.hash_key, self.record.range_key),
        )

    def _apply(self) -> None:
        self.record.mark_destroyed()

    def _after_commit(self) -> None:
        self._model.hooks.run_after(("destroy",), self.record)
        self._model.hooks.run_after(("commit",), self.record)

    def _rollback(self) -> None:
        self._model.hooks.run_after(("rollback",), self.record)

    def observable_by_user_result(self) -> Record[Any] | Literal[False]:
        if self._aborted:
            return False
        return self.record


def _lookup_key_part(key: Mapping[str, Any], attr_def: AttributeDefinition) -> Any:
    if attr_def.python_name in key:
        return key[attr_def.python_name]
    return key.get(attr_def.attribute_name)


class DeleteWithPrimaryKey(Action):
    """Delete by primary key without loading a record; no hooks run.

    ``primary_key`` is the hash key value, a ``(hash, range)`` tuple, or a
    mapping keyed by field or attribute names.
    """

    def __init__(self, model: ModelDefinition[Any], primary_key: Any) -> None:
        super().__init__()
        self._model = model
        self._primary_key = primary_key
        self._hash_key: Any = None
        self._range_key: Any = None

    def _register(self, context: ActionContext) -> None:
        key = self._primary_key
        if isinstance(key, Mapping):
            self._hash_key = _lookup_key_part(key, self._model.pk)
            if self._model.sk is not None:
                self._range_key = _lookup_key_part(key, self._model.sk)
        elif isinstance(key, tuple):
            if len(key) != 2:
                raise ValidationError("expected key tuple (pk, sk)")
            self._hash_key, self._range_key = key
            if self._model.sk is None and self._range_key is not None:
                raise ValidationError("model does not define sk")
        else:
            self._hash_key = key

        if self._hash_key is None:
            raise MissingHashKey()
        if self._model.range_key and self._range_key is None:
            raise MissingRangeKey()

    def _request(self, context: ActionContext) -> WireOperation:
        return DeleteOperation(
            table_name=context.config.table_name(self._model.table_name),
            key=_dump_key(self._model, self._hash_key, self._range_key),
        )

    def observable_by_user_result(self) -> None:
        return None

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from ddbtx import (
    ABORT,
    ActionContext,
    ActionOptions,
    Create,
    DeleteWithPrimaryKey,
    Destroy,
    DocumentNotValid,
    MissingHashKey,
    MissingRangeKey,
    ModelDefinition,
    ModelHooks,
    PutOperation,
    Record,
    RecordNotDestroyed,
    RecordNotSaved,
    Save,
    TransactionConfig,
    UpdateOperation,
    ValidationError,
    ddb_field,
)
from ddbtx.testkit import FixedKeyGenerator, fixed_clock

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)


@dataclass
class User:
    id: str | None = ddb_field(roles=["pk"], default=None)
    name: str = ddb_field(default="")
    tags: set[str] = ddb_field(set_=True, default_factory=set)
    prefs: dict | None = ddb_field(default=None)
    nickname: str | None = ddb_field(default=None)


@dataclass
class Counter:
    id: str = ddb_field(roles=["pk"])
    count: int = ddb_field(default=0)
    label: str = ddb_field(name="lbl", default="")


@dataclass
class Event:
    pk: str | None = ddb_field(roles=["pk"], default=None)
    sk: str | None = ddb_field(roles=["sk"], default=None)
    value: int = ddb_field(default=0)


def _context(**config: object) -> ActionContext:
    return ActionContext(
        config=TransactionConfig(**config),  # type: ignore[arg-type]
        key_generator=FixedKeyGenerator(["generated-1", "generated-2"]),
        clock=fixed_clock(NOW),
    )


def test_create_generates_key_and_builds_conditional_put() -> None:
    model = ModelDefinition.from_dataclass(User, table_name="users")
    action = Create(model, {"name": "x"})

    action.on_registration(_context())

    assert action.record.hash_key == "generated-1"
    assert action.aborted is False
    assert action.state == "ready"
    assert action.action_request().to_request() == {
        "put": {
            "item": {"id": "generated-1", "name": "x"},
            "table_name": "users",
            "condition_expression": "attribute_not_exists(id)",
        }
    }
    assert action.observable_by_user_result() is action.record


def test_create_keeps_explicit_hash_key_and_accepts_dataclass_instance() -> None:
    model = ModelDefinition.from_dataclass(User, table_name="users")
    action = Create(model, User(id="u1", name="y"))

    action.on_registration(_context())

    op = action.action_request()
    assert isinstance(op, PutOperation)
    assert op.item["id"] == "u1"


def test_create_condition_covers_range_key() -> None:
    model = ModelDefinition.from_dataclass(Event, table_name="events")
    action = Create(model, {"pk": "A", "sk": "1", "value": 3})

    action.on_registration(_context())

    op = action.action_request()
    assert isinstance(op, PutOperation)
    assert op.condition_expression == "attribute_not_exists(pk) and attribute_not_exists(sk)"
    assert op.item == {"pk": "A", "sk": "1", "value": 3}


def test_create_requires_range_key_on_range_keyed_model() -> None:
    model = ModelDefinition.from_dataclass(Event, table_name="events")
    action = Create(model, {"pk": "A"})

    with pytest.raises(MissingRangeKey):
        action.on_registration(_context())
    assert action.state == "aborted"


def test_create_put_sanitizes_empty_and_null_values() -> None:
    model = ModelDefinition.from_dataclass(User, table_name="users")
    action = Create(model, {"id": "u1", "name": "", "tags": set(), "prefs": {1: "a"}})

    action.on_registration(_context())
    op = action.action_request()

    assert isinstance(op, PutOperation)
    assert op.item == {"id": "u1", "prefs": {"1": "a"}}


def test_create_put_keeps_nulls_when_configured() -> None:
    model = ModelDefinition.from_dataclass(User, table_name="users")
    action = Create(model, {"id": "u1", "name": "n"})

    action.on_registration(_context(store_attribute_with_nil_value=True))
    op = action.action_request()

    assert isinstance(op, PutOperation)
    assert op.item["nickname"] is None
    assert "tags" not in op.item


def test_create_uses_namespaced_table_name() -> None:
    model = ModelDefinition.from_dataclass(User, table_name="users")
    action = Create(model, {"id": "u1"})

    action.on_registration(_context(namespace="dev"))

    assert action.action_request().table_name == "dev_users"


def test_create_sets_timestamps_but_keeps_existing_created_at() -> None:
    model = ModelDefinition.from_dataclass(User, table_name="users", timestamps=True)
    earlier = datetime(2020, 1, 1, tzinfo=UTC)

    fresh = Create(model, {"id": "u1"})
    fresh.on_registration(_context())
    assert fresh.record["created_at"] == NOW
    assert fresh.record["updated_at"] == NOW

    kept = Create(model, {"id": "u2", "created_at": earlier})
    kept.on_registration(_context())
    assert kept.record["created_at"] == earlier
    assert kept.record["updated_at"] == NOW

    op = kept.action_request()
    assert isinstance(op, PutOperation)
    assert op.item["created_at"] == Decimal(str(earlier.timestamp()))
    assert op.item["updated_at"] == Decimal(str(NOW.timestamp()))


def test_save_existing_record_builds_aliased_update() -> None:
    model = ModelDefinition.from_dataclass(Counter, table_name="counters")
    record = Record.from_item(model, {"id": "c1", "count": 1})
    record["count"] = 2

    action = Save(record)
    action.on_registration(_context())

    assert action.skipped is False
    assert action.action_request().to_request() == {
        "update": {
            "key": {"id": "c1"},
            "table_name": "counters",
            "update_expression": "SET #_n0 = :_s0",
            "expression_attribute_values": {":_s0": 2},
            "expression_attribute_names": {"#_n0": "count"},
        }
    }


def test_save_update_placeholders_follow_change_order_and_storage_names() -> None:
    model = ModelDefinition.from_dataclass(Counter, table_name="counters")
    record = Record.from_item(model, {"id": "c1", "count": 1, "lbl": "a"})
    record["label"] = "b"
    record["count"] = 5

    action = Save(record)
    action.on_registration(_context())
    op = action.action_request()

    assert isinstance(op, UpdateOperation)
    assert op.update_expression == "SET #_n0 = :_s0, #_n1 = :_s1"
    assert op.expression_attribute_names == {"#_n0": "lbl", "#_n1": "count"}
    assert op.expression_attribute_values == {":_s0": "b", ":_s1": 5}


def test_save_update_never_targets_key_attributes() -> None:
    model = ModelDefinition.from_dataclass(Event, table_name="events")
    record = Record.from_item(model, {"pk": "A", "sk": "1", "value": 1})
    record["sk"] = "2"
    record["value"] = 2

    action = Save(record)
    action.on_registration(_context())
    op = action.action_request()

    assert isinstance(op, UpdateOperation)
    assert set(op.expression_attribute_names.values()) == {"value"}  # type: ignore[union-attr]
    # The key is built from current values, so a changed range key addresses another item.
    assert op.key == {"pk": "A", "sk": "2"}


def test_save_update_removes_emptied_sets() -> None:
    model = ModelDefinition.from_dataclass(User, table_name="users")
    record = Record.from_item(model, {"id": "u1", "name": "n", "tags": {"a", "b"}})
    record["tags"] = set()
    record["name"] = "m"

    action = Save(record)
    action.on_registration(_context())
    op = action.action_request()

    assert isinstance(op, UpdateOperation)
    assert op.update_expression == "SET #_n1 = :_s1 REMOVE #_n0"
    assert op.expression_attribute_names == {"#_n0": "tags", "#_n1": "name"}
    assert op.expression_attribute_values == {":_s1": "m"}


def test_save_update_with_only_emptied_sets_sends_no_values() -> None:
    model = ModelDefinition.from_dataclass(User, table_name="users")
    record = Record.from_item(model, {"id": "u1", "tags": {"a"}})
    record["tags"] = []

    action = Save(record)
    action.on_registration(_context())

    assert action.action_request().to_request() == {
        "update": {
            "key": {"id": "u1"},
            "table_name": "users",
            "update_expression": "REMOVE #_n0",
            "expression_attribute_names": {"#_n0": "tags"},
        }
    }


def test_save_with_only_key_changes_is_skipped() -> None:
    model = ModelDefinition.from_dataclass(Event, table_name="events")
    record = Record.from_item(model, {"pk": "A", "sk": "1", "value": 1})
    record["sk"] = "2"

    action = Save(record)
    action.on_registration(_context())

    assert action.skipped is True
    assert action.observable_by_user_result() is True


def test_save_unchanged_record_is_skipped_without_touching_timestamps() -> None:
    model = ModelDefinition.from_dataclass(Counter, table_name="counters", timestamps=True)
    record = Record.from_item(model, {"id": "c1", "count": 1})

    action = Save(record)
    action.on_registration(_context())

    assert action.skipped is True
    assert record["updated_at"] is None


def test_save_update_touches_updated_at_unless_disabled() -> None:
    model = ModelDefinition.from_dataclass(Counter, table_name="counters", timestamps=True)

    record = Record.from_item(model, {"id": "c1", "count": 1})
    record["count"] = 2
    touched = Save(record)
    touched.on_registration(_context())
    op = touched.action_request()
    assert isinstance(op, UpdateOperation)
    assert op.expression_attribute_names == {"#_n0": "count", "#_n1": "updated_at"}
    assert record["created_at"] is None

    other = Record.from_item(model, {"id": "c2", "count": 1})
    other["count"] = 3
    untouched = Save(other, touch=False)
    untouched.on_registration(_context())
    op = untouched.action_request()
    assert isinstance(op, UpdateOperation)
    assert op.expression_attribute_names == {"#_n0": "count"}


def test_save_new_record_behaves_like_create() -> None:
    model = ModelDefinition.from_dataclass(User, table_name="users")
    record = Record(model, {"name": "z"})

    action = Save(record)
    action.on_registration(_context())
    op = action.action_request()

    assert isinstance(op, PutOperation)
    assert op.item["id"] == "generated-1"
    assert action.observable_by_user_result() is True


def test_save_missing_keys_raise() -> None:
    model = ModelDefinition.from_dataclass(User, table_name="users")
    persisted_without_key = Record.from_item(model, {"name": "x"})
    with pytest.raises(MissingHashKey):
        Save(persisted_without_key).on_registration(_context())

    event_model = ModelDefinition.from_dataclass(Event, table_name="events")
    no_range = Record.from_item(event_model, {"pk": "A"})
    with pytest.raises(MissingRangeKey):
        Save(no_range).on_registration(_context())


def _validated_model() -> ModelDefinition[User]:
    hooks = ModelHooks()
    hooks.validator(lambda r: None if r["name"] else "name is required")
    return ModelDefinition.from_dataclass(User, table_name="users", hooks=hooks)


def test_invalid_record_raises_when_requested() -> None:
    model = _validated_model()
    record = Record(model, {"id": "u1"})

    with pytest.raises(DocumentNotValid) as excinfo:
        Save(record, raise_error=True).on_registration(_context())

    assert excinfo.value.record is record
    assert excinfo.value.errors == ("name is required",)


def test_invalid_record_aborts_silently_by_default() -> None:
    model = _validated_model()
    record = Record(model, {"id": "u1"})

    action = Save(record)
    action.on_registration(_context())

    assert action.aborted is True
    assert action.state == "aborted"
    assert action.observable_by_user_result() is False
    with pytest.raises(ValidationError, match="aborted"):
        action.action_request()


def test_validation_can_be_skipped() -> None:
    model = _validated_model()
    record = Record(model, {"id": "u1"})

    action = Save(record, validate=False)
    action.on_registration(_context())

    assert action.aborted is False


def test_before_save_hook_abort() -> None:
    hooks = ModelHooks()
    hooks.before("create", lambda r: ABORT)
    model = ModelDefinition.from_dataclass(User, table_name="users", hooks=hooks)

    silent = Create(model, {"name": "x"})
    silent.on_registration(_context())
    assert silent.aborted is True
    assert silent.record.hash_key is None

    with pytest.raises(RecordNotSaved):
        Create(model, {"name": "x"}, raise_error=True).on_registration(_context())


def test_update_hooks_do_not_run_for_new_records() -> None:
    calls: list[str] = []
    hooks = ModelHooks()
    hooks.before("save", lambda r: calls.append("save"))
    hooks.before("create", lambda r: calls.append("create"))
    hooks.before("update", lambda r: calls.append("update"))
    model = ModelDefinition.from_dataclass(User, table_name="users", hooks=hooks)

    Create(model, {"name": "x"}).on_registration(_context())

    assert calls == ["save", "create"]


def test_destroy_builds_delete() -> None:
    model = ModelDefinition.from_dataclass(Event, table_name="events")
    record = Record.from_item(model, {"pk": "A", "sk": "1"})

    action = Destroy(record)
    action.on_registration(_context())

    assert action.action_request().to_request() == {
        "delete": {"key": {"pk": "A", "sk": "1"}, "table_name": "events"}
    }
    assert action.observable_by_user_result() is record


def test_destroy_hook_abort() -> None:
    hooks = ModelHooks()
    hooks.before("destroy", lambda r: False)
    model = ModelDefinition.from_dataclass(Counter, table_name="counters", hooks=hooks)
    record = Record.from_item(model, {"id": "c1"})

    silent = Destroy(record)
    silent.on_registration(_context())
    assert silent.aborted is True
    assert silent.observable_by_user_result() is False

    with pytest.raises(RecordNotDestroyed):
        Destroy(record, raise_error=True).on_registration(_context())


def test_destroy_requires_keys() -> None:
    model = ModelDefinition.from_dataclass(Event, table_name="events")

    with pytest.raises(MissingHashKey):
        Destroy(Record(model)).on_registration(_context())
    with pytest.raises(MissingRangeKey):
        Destroy(Record.from_item(model, {"pk": "A"})).on_registration(_context())


@pytest.mark.parametrize(
    "key",
    [("A", "1"), {"pk": "A", "sk": "1"}],
)
def test_delete_with_primary_key_accepts_tuple_or_mapping(key: object) -> None:
    model = ModelDefinition.from_dataclass(Event, table_name="events")

    action = DeleteWithPrimaryKey(model, key)
    action.on_registration(_context())

    assert action.action_request().to_request() == {
        "delete": {"key": {"pk": "A", "sk": "1"}, "table_name": "events"}
    }
    assert action.observable_by_user_result() is None
    assert action.aborted is False


def test_delete_with_primary_key_scalar_and_storage_names() -> None:
    model = ModelDefinition.from_dataclass(Counter, table_name="counters")
    scalar = DeleteWithPrimaryKey(model, "c1")
    scalar.on_registration(_context())
    assert scalar.action_request().to_request()["delete"]["key"] == {"id": "c1"}

    @dataclass
    class Upper:
        id: str = ddb_field(name="ID", roles=["pk"])

    upper_model = ModelDefinition.from_dataclass(Upper, table_name="upper")
    by_storage_name = DeleteWithPrimaryKey(upper_model, {"ID": "c2"})
    by_storage_name.on_registration(_context())
    assert by_storage_name.action_request().to_request()["delete"]["key"] == {"ID": "c2"}


def test_delete_with_primary_key_validation() -> None:
    model = ModelDefinition.from_dataclass(Event, table_name="events")

    with pytest.raises(MissingRangeKey):
        DeleteWithPrimaryKey(model, {"pk": "A"}).on_registration(_context())
    with pytest.raises(MissingHashKey):
        DeleteWithPrimaryKey(model, {"sk": "1"}).on_registration(_context())
    with pytest.raises(ValidationError, match="expected key tuple"):
        DeleteWithPrimaryKey(model, ("A",)).on_registration(_context())

    counter_model = ModelDefinition.from_dataclass(Counter, table_name="counters")
    with pytest.raises(ValidationError, match="does not define sk"):
        DeleteWithPrimaryKey(counter_model, ("c1", "x")).on_registration(_context())


def test_actions_register_once_and_require_registration_before_request() -> None:
    model = ModelDefinition.from_dataclass(Counter, table_name="counters")
    action = DeleteWithPrimaryKey(model, "c1")

    with pytest.raises(ValidationError, match="not registered"):
        action.action_request()

    action.on_registration(_context())
    with pytest.raises(ValidationError, match="already registered"):
        action.on_registration(_context())


def test_completing_marks_record_persisted_and_runs_after_hooks() -> None:
    calls: list[str] = []
    hooks = ModelHooks()
    hooks.after("create", lambda r: calls.append("after_create"))
    hooks.after("save", lambda r: calls.append("after_save"))
    hooks.after("commit", lambda r: calls.append("after_commit"))
    model = ModelDefinition.from_dataclass(User, table_name="users", hooks=hooks)

    action = Create(model, {"name": "x"})
    action.on_registration(_context())
    assert calls == []

    action.on_completing()

    assert calls == ["after_create", "after_save", "after_commit"]
    assert action.record.persisted is True
    assert action.record.changed is False
    assert action.state == "committed"


def test_completing_an_aborted_action_is_a_no_op() -> None:
    calls: list[str] = []
    hooks = ModelHooks()
    hooks.before("destroy", lambda r: ABORT)
    hooks.after("commit", lambda r: calls.append("commit"))
    model = ModelDefinition.from_dataclass(Counter, table_name="counters", hooks=hooks)
    record = Record.from_item(model, {"id": "c1"})

    action = Destroy(record)
    action.on_registration(_context())
    action.on_completing()

    assert calls == []
    assert record.destroyed is False


def test_options_are_exclusive_with_keyword_options() -> None:
    model = ModelDefinition.from_dataclass(Counter, table_name="counters")
    record = Record.from_item(model, {"id": "c1"})

    with pytest.raises(ValidationError):
        Save(record, options=ActionOptions(raise_error=True), touch=False)

    assert Save(record, options=ActionOptions(raise_error=True)).options.raise_error is True


from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from types import TracebackType
from typing import Any, Literal

from .actions import (
    Action,
    ActionContext,
    Create,
    DeleteWithPrimaryKey,
    Destroy,
    Save,
)
from .config import TransactionConfig
from .errors import StoreError, ValidationError
from .keys import KeyGenerator, UUIDKeyGenerator
from .model import ModelDefinition
from .operations import PutOperation, WireOperation
from .record import Record
from .store import DynamoDBStore, Store

logger = logging.getLogger(__name__)

TransactionState = Literal["collecting", "registering", "executing", "aborted", "committed", "rolled_back"]


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class TransactionResult:
    """Observable result of every registered action, in registration order.

    ``empty`` is True when no action produced a wire operation, in which case
    the store was never contacted.
    """

    results: tuple[Any, ...]
    empty: bool = False

    def __iter__(self) -> Iterator[Any]:
        return iter(self.results)

    def __len__(self) -> int:
        return len(self.results)

    def __getitem__(self, index: int) -> Any:
        return self.results[index]


def _describe_failure(op: WireOperation, code: str) -> str:
    if isinstance(op, PutOperation) and code == "ConditionalCheckFailed":
        return f"{op.condition_expression} failed on {op.table_name}: record already exists"
    return f"{type(op).__name__} on {op.table_name} failed: {code}"


class TransactionWrite:
    """Collects write actions and commits them as one atomic store request."""

    def __init__(
        self,
        store: Store | None = None,
        *,
        config: TransactionConfig | None = None,
        key_generator: KeyGenerator | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store: Store = store or DynamoDBStore()
        self._config = config or TransactionConfig()
        self._context = ActionContext(
            config=self._config,
            key_generator=key_generator or UUIDKeyGenerator(),
            clock=clock or _utcnow,
        )
        self._actions: list[Action] = []
        self._state: TransactionState = "collecting"
        self._result: TransactionResult | None = None

    @classmethod
    def execute(
        cls,
        body: Callable[[TransactionWrite], None],
        store: Store | None = None,
        **kwargs: Any,
    ) -> TransactionResult:
        tx = cls(store, **kwargs)
        body(tx)
        return tx.commit()

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def actions(self) -> tuple[Action, ...]:
        return tuple(self._actions)

    @property
    def result(self) -> TransactionResult | None:
        return self._result

    def add[A: Action](self, action: A) -> A:
        if self._state != "collecting":
            raise ValidationError(f"cannot add actions to a transaction in state {self._state}")
        if any(existing is action for existing in self._actions):
            raise ValidationError(f"{type(action).__name__} is already part of this transaction")
        action.claim(self)
        self._actions.append(action)
        return action

    def create(self, model: ModelDefinition[Any], attributes: Any = None, **options: Any) -> Create:
        return self.add(Create(model, attributes, **options))

    def save(self, record: Record[Any], **options: Any) -> Save:
        return self.add(Save(record, **options))

    def destroy(self, record: Record[Any], **options: Any) -> Destroy:
        return self.add(Destroy(record, **options))

    def delete(self, model: ModelDefinition[Any], primary_key: Any) -> DeleteWithPrimaryKey:
        return self.add(DeleteWithPrimaryKey(model, primary_key))

    def commit(self) -> TransactionResult:
        if self._state != "collecting":
            raise ValidationError(f"cannot commit a transaction in state {self._state}")

        self._state = "registering"
        try:
            for action in self._actions:
                action.on_registration(self._context)

            effective = [a for a in self._actions if not a.aborted and not a.skipped]
            operations = [a.action_request() for a in effective]
            if len(operations) > self._config.max_actions:
                raise ValidationError(f"a transaction supports at most {self._config.max_actions} actions")
        except Exception:
            self._state = "aborted"
            raise

        logger.debug(
            "registered %d actions (%d effective, %d aborted, %d skipped)",
            len(self._actions),
            len(effective),
            sum(1 for a in self._actions if a.aborted),
            sum(1 for a in self._actions if a.skipped and not a.aborted),
        )

        if not operations:
            self._state = "committed"
            self._result = TransactionResult(results=self._results(), empty=True)
            return self._result

        self._state = "executing"
        try:
            self._store.submit_transaction(operations)
        except StoreError as err:
            self._annotate(err, effective, operations)
            logger.warning("transaction rolled back: %s", err)
            self._rollback()
            raise
        except Exception:
            logger.warning("transaction rolled back after unexpected store failure", exc_info=True)
            self._rollback()
            raise

        # The store applied the whole batch; every record reflects it before any hook runs.
        for action in effective:
            action.apply_completion()
        self._state = "committed"
        logger.debug("transaction committed: %d operations", len(operations))
        self._result = TransactionResult(results=self._results())

        hook_error: Exception | None = None
        for action in effective:
            try:
                action.run_completion_hooks()
            except Exception as err:
                logger.exception("completion hook failed for %s", type(action).__name__)
                if hook_error is None:
                    hook_error = err
        if hook_error is not None:
            raise hook_error
        return self._result

    def _results(self) -> tuple[Any, ...]:
        return tuple(action.observable_by_user_result() for action in self._actions)

    def _rollback(self) -> None:
        self._state = "rolled_back"
        for action in self._actions:
            try:
                action.on_rollback()
            except Exception:
                logger.exception("rollback hook failed for %s", type(action).__name__)

    def _annotate(
        self,
        err: StoreError,
        effective: Sequence[Action],
        operations: Sequence[WireOperation],
    ) -> None:
        failed: list[Action] = []
        causes: list[str] = []
        for action, op, code in zip(effective, operations, err.reason_codes, strict=False):
            if code in ("", "None"):
                continue
            failed.append(action)
            causes.append(_describe_failure(op, code))

        err.failed_actions = tuple(failed)
        if causes:
            err.likely_cause = "; ".join(causes)

    def __enter__(self) -> TransactionWrite:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            if self._state == "collecting":
                self._state = "aborted"
                logger.debug("transaction discarded: %s", exc_type.__name__)
            return
        if self._state == "collecting":
            self.commit()

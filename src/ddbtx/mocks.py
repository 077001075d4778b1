from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from botocore.exceptions import ClientError


class _Wildcard:
    def __repr__(self) -> str:  # pragma: no cover
        return "ANY"


ANY: Any = _Wildcard()

type ItemsCheck = Sequence[Mapping[str, Any]] | Callable[[list[dict[str, Any]]], None]


def _mismatch(expected: Any, actual: Any, path: str) -> str | None:
    if expected is ANY:
        return None

    if isinstance(expected, Mapping):
        if not isinstance(actual, Mapping):
            return f"{path}: expected a map, got {actual!r}"
        unexpected = sorted(set(actual).difference(expected))
        if unexpected:
            return f"{path}: unexpected keys {unexpected}"
        for key, value in expected.items():
            if key not in actual:
                return f"{path}: missing {key}"
            problem = _mismatch(value, actual[key], f"{path}.{key}")
            if problem:
                return problem
        return None

    if isinstance(expected, (list, tuple)):
        if not isinstance(actual, (list, tuple)):
            return f"{path}: expected a list, got {actual!r}"
        if len(expected) != len(actual):
            return f"{path}: expected {len(expected)} entries, got {len(actual)}"
        for i, (e, a) in enumerate(zip(expected, actual, strict=True)):
            problem = _mismatch(e, a, f"{path}[{i}]")
            if problem:
                return problem
        return None

    if expected != actual:
        return f"{path}: expected {expected!r}, got {actual!r}"
    return None


def cancellation_error(*codes: str | None, message: str | None = None) -> ClientError:
    """A ``TransactionCanceledException`` as botocore raises it, one reason per item."""
    reasons = [{"Code": code or "None"} for code in codes]
    summary = ", ".join(reason["Code"] for reason in reasons)
    default = f"Transaction cancelled, please refer cancellation reasons for specific reasons [{summary}]"
    return ClientError(
        {
            "Error": {
                "Code": "TransactionCanceledException",
                "Message": message or default,
            },
            "CancellationReasons": reasons,
        },
        "TransactWriteItems",
    )


@dataclass(frozen=True)
class ScriptedTransaction:
    items: ItemsCheck | None = None
    error: Exception | None = None


class FakeDynamoDBClient:
    """Stand-in for the boto3 client as ``DynamoDBStore`` uses it.

    Each ``expect_transaction`` scripts the next ``transact_write_items`` call:
    the submitted ``TransactItems`` are checked against ``items`` (``ANY``
    matches any value, extra keys fail) and the call then succeeds or raises.
    """

    def __init__(self) -> None:
        self._scripted: list[ScriptedTransaction] = []
        self.transactions: list[list[dict[str, Any]]] = []

    def expect_transaction(
        self,
        items: ItemsCheck | None = None,
        *,
        cancellation_reasons: Sequence[str | None] | None = None,
        error: Exception | None = None,
    ) -> None:
        if cancellation_reasons is not None:
            if error is not None:
                raise ValueError("pass either cancellation_reasons or error, not both")
            error = cancellation_error(*cancellation_reasons)
        self._scripted.append(ScriptedTransaction(items=items, error=error))

    def assert_all_consumed(self) -> None:
        if self._scripted:
            raise AssertionError(f"{len(self._scripted)} scripted transaction(s) were never submitted")

    def transact_write_items(self, *, TransactItems: list[dict[str, Any]], **kwargs: Any) -> dict[str, Any]:
        self.transactions.append(list(TransactItems))
        if not self._scripted:
            raise AssertionError("unexpected transact_write_items call")

        scripted = self._scripted.pop(0)
        if callable(scripted.items):
            scripted.items(list(TransactItems))
        elif scripted.items is not None:
            problem = _mismatch(list(scripted.items), TransactItems, "TransactItems")
            if problem:
                raise AssertionError(problem)

        if scripted.error is not None:
            raise scripted.error
        return {}

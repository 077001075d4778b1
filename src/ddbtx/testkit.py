from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from datetime import datetime

from .errors import StoreError
from .mocks import ANY, FakeDynamoDBClient, cancellation_error
from .operations import WireOperation


class FixedKeyGenerator:
    """Hands out the given keys in order, then ``{prefix}{n}`` keys."""

    def __init__(self, keys: Iterable[str] = (), *, prefix: str = "key-") -> None:
        self._keys = list(keys)
        self._prefix = prefix
        self._counter = 0

    def new_key(self) -> str:
        if self._keys:
            return self._keys.pop(0)
        self._counter += 1
        return f"{self._prefix}{self._counter}"


def fixed_clock(now: datetime) -> Callable[[], datetime]:
    def clock() -> datetime:
        return now

    return clock


class RecordingStore:
    """In-process store that records each submitted batch, optionally failing."""

    def __init__(self, *, error: StoreError | None = None) -> None:
        self.error = error
        self.submissions: list[list[WireOperation]] = []

    def submit_transaction(self, operations: Sequence[WireOperation]) -> None:
        self.submissions.append(list(operations))
        if self.error is not None:
            raise self.error

    @property
    def requests(self) -> list[list[dict]]:
        return [[op.to_request() for op in batch] for batch in self.submissions]


__all__ = [
    "ANY",
    "FakeDynamoDBClient",
    "FixedKeyGenerator",
    "RecordingStore",
    "cancellation_error",
    "fixed_clock",
]

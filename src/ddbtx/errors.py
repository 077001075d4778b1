from __future__ import annotations

from typing import Any


class DdbTxError(Exception):
    pass


class ValidationError(DdbTxError):
    pass


class MissingHashKey(DdbTxError):
    def __init__(self, message: str = "hash key is missing") -> None:
        super().__init__(message)


class MissingRangeKey(DdbTxError):
    def __init__(self, message: str = "range key is missing") -> None:
        super().__init__(message)


class _RecordError(DdbTxError):
    def __init__(self, record: Any, message: str) -> None:
        super().__init__(message)
        self.record = record


class DocumentNotValid(_RecordError):
    def __init__(self, record: Any) -> None:
        errors = list(getattr(record, "errors", ()))
        detail = ", ".join(errors) if errors else "validation failed"
        super().__init__(record, f"document not valid: {detail}")
        self.errors = tuple(errors)


class RecordNotSaved(_RecordError):
    def __init__(self, record: Any) -> None:
        super().__init__(record, "failed to save the record: a before hook aborted the operation")


class RecordNotDestroyed(_RecordError):
    def __init__(self, record: Any) -> None:
        super().__init__(record, "failed to destroy the record: a before hook aborted the operation")


class StoreError(DdbTxError):
    def __init__(self, message: str, *, reason_codes: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.reason_codes = reason_codes
        self.failed_actions: tuple[Any, ...] = ()
        self.likely_cause: str | None = None

    def __str__(self) -> str:
        base = super().__str__()
        if self.likely_cause:
            return f"{base} (likely cause: {self.likely_cause})"
        return base


class ConditionFailedError(StoreError):
    pass


class TransactionCanceledError(StoreError):
    pass


class AwsError(StoreError):
    def __init__(self, *, code: str, message: str, reason_codes: tuple[str, ...] = ()) -> None:
        super().__init__(f"{code}: {message}", reason_codes=reason_codes)
        self.code = code
        self.message = message

from __future__ import annotations

from botocore.exceptions import BotoCoreError, ClientError

from .errors import (
    AwsError,
    ConditionFailedError,
    StoreError,
    TransactionCanceledError,
)


def _reason_codes(err: ClientError) -> tuple[str, ...]:
    # One entry per TransactItem, in request order; "None" marks items that did not fail.
    reasons_raw = err.response.get("CancellationReasons") or []
    return tuple(
        str(reason.get("Code") or "None") if isinstance(reason, dict) else "None" for reason in reasons_raw
    )


def map_transaction_error(err: ClientError) -> StoreError:
    code = str(err.response.get("Error", {}).get("Code", ""))
    message = str(err.response.get("Error", {}).get("Message", ""))

    if code == "TransactionCanceledException":
        reason_codes = _reason_codes(err)

        if any(rc == "ConditionalCheckFailed" for rc in reason_codes) or "ConditionalCheckFailed" in message:
            return ConditionFailedError(
                message or "transaction canceled: ConditionalCheckFailed",
                reason_codes=reason_codes,
            )

        return TransactionCanceledError(message or "transaction canceled", reason_codes=reason_codes)

    if code == "ConditionalCheckFailedException":
        return ConditionFailedError(message or "conditional check failed")

    return AwsError(code=code or "UnknownError", message=message or str(err))


def map_transport_error(err: BotoCoreError) -> StoreError:
    return StoreError(f"store request failed: {err}")

from __future__ import annotations

import json
import re
from importlib.resources import files
from typing import TYPE_CHECKING, Any

from .actions import (
    Action,
    ActionContext,
    ActionOptions,
    Create,
    DeleteWithPrimaryKey,
    Destroy,
    Save,
)
from .config import TransactionConfig
from .dumping import dump_attributes, sanitize_item
from .errors import (
    AwsError,
    ConditionFailedError,
    DdbTxError,
    DocumentNotValid,
    MissingHashKey,
    MissingRangeKey,
    RecordNotDestroyed,
    RecordNotSaved,
    StoreError,
    TransactionCanceledError,
    ValidationError,
)
from .hooks import ABORT, CONTINUE, ModelHooks
from .keys import KeyGenerator, UUIDKeyGenerator
from .model import (
    AttributeConverter,
    AttributeDefinition,
    ModelDefinition,
    ModelDefinitionError,
    ddb_field,
)
from .operations import DeleteOperation, PutOperation, UpdateOperation, WireOperation
from .record import Record

if TYPE_CHECKING:
    from .store import DynamoDBStore, Store
    from .transaction import TransactionResult, TransactionWrite


def _read_repo_version() -> str:
    try:
        data = json.loads(files(__package__).joinpath("version.json").read_text(encoding="utf-8"))
    except Exception:
        return "0.0.0"

    version = data.get("version")
    return version if isinstance(version, str) and version else "0.0.0"


def _normalize_repo_version(repo_version: str) -> str:
    match = re.match(r"^(\d+\.\d+\.\d+)-rc\.?([0-9]+)$", repo_version)
    if match:
        return f"{match.group(1)}rc{match.group(2)}"
    return repo_version


__repo_version__ = _read_repo_version()
__version__ = _normalize_repo_version(__repo_version__)


def __getattr__(name: str) -> Any:
    if name in {"DynamoDBStore", "Store"}:
        from . import store

        return getattr(store, name)
    if name in {"TransactionResult", "TransactionWrite"}:
        from . import transaction

        return getattr(transaction, name)
    raise AttributeError(name)


__all__ = [
    "ABORT",
    "Action",
    "ActionContext",
    "ActionOptions",
    "AttributeConverter",
    "AttributeDefinition",
    "AwsError",
    "CONTINUE",
    "ConditionFailedError",
    "Create",
    "DdbTxError",
    "DeleteOperation",
    "DeleteWithPrimaryKey",
    "Destroy",
    "DocumentNotValid",
    "DynamoDBStore",
    "KeyGenerator",
    "MissingHashKey",
    "MissingRangeKey",
    "ModelDefinition",
    "ModelDefinitionError",
    "ModelHooks",
    "PutOperation",
    "Record",
    "RecordNotDestroyed",
    "RecordNotSaved",
    "Save",
    "Store",
    "StoreError",
    "TransactionCanceledError",
    "TransactionConfig",
    "TransactionResult",
    "TransactionWrite",
    "UUIDKeyGenerator",
    "UpdateOperation",
    "ValidationError",
    "WireOperation",
    "__repo_version__",
    "__version__",
    "ddb_field",
    "dump_attributes",
    "sanitize_item",
]

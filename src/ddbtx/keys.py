from __future__ import annotations

import uuid
from typing import Protocol


class KeyGenerator(Protocol):
    def new_key(self) -> str: ...


class UUIDKeyGenerator:
    def new_key(self) -> str:
        return str(uuid.uuid4())

"""Lifecycle hooks and validators attached to a model.

Hooks are ordered pipelines keyed by phase. A before-hook halts its chain by
returning ``ABORT`` (``False`` is accepted too); any other return value,
including ``None``, lets the chain continue. After-hooks cannot halt anything.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, Literal, get_args

if TYPE_CHECKING:
    from .record import Record

Phase = Literal["save", "create", "update", "destroy", "commit", "rollback"]
HookResult = Literal["continue", "abort"]

CONTINUE: HookResult = "continue"
ABORT: HookResult = "abort"

type Hook = Callable[[Record], Any]
type Validator = Callable[[Record], str | None]

_PHASES: frozenset[str] = frozenset(get_args(Phase))


def _check_phase(phase: str) -> None:
    if phase not in _PHASES:
        raise ValueError(f"unknown hook phase: {phase}")


def _halts(result: Any) -> bool:
    return result is False or result == ABORT


class ModelHooks:
    def __init__(self) -> None:
        self._before: dict[str, list[Hook]] = {}
        self._after: dict[str, list[Hook]] = {}
        self._validators: list[Validator] = []

    def before(self, phase: Phase, hook: Hook) -> Hook:
        _check_phase(phase)
        self._before.setdefault(phase, []).append(hook)
        return hook

    def after(self, phase: Phase, hook: Hook) -> Hook:
        _check_phase(phase)
        self._after.setdefault(phase, []).append(hook)
        return hook

    def validator(self, fn: Validator) -> Validator:
        self._validators.append(fn)
        return fn

    def run_before(self, phases: Iterable[Phase], record: Record) -> bool:
        """Run before-hooks of each phase in order; False once any hook aborts."""
        for phase in phases:
            for hook in self._before.get(phase, ()):
                if _halts(hook(record)):
                    return False
        return True

    def run_after(self, phases: Iterable[Phase], record: Record) -> None:
        for phase in phases:
            for hook in self._after.get(phase, ()):
                hook(record)

    def validate(self, record: Record) -> list[str]:
        errors: list[str] = []
        for fn in self._validators:
            message = fn(record)
            if message:
                errors.append(message)
        return errors

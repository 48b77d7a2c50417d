"""
Two-phase execution contract.

A loaded unit goes through a *definition* phase, during which declarations
and ``begin`` blocks run immediately and registry writes become visible,
and then a *run* phase, in which its ordinary statements execute in order.

Names bound by ordinary assignment are declared before the definition
phase starts but only assigned during the run phase. Reading one from a
definition block yields :data:`UNASSIGNED`, never the eventual value.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, MutableMapping, Optional

from metastage.errors import NotFoundError, UnassignedVariableError


logger = logging.getLogger(__name__)


class ExecutionPhase(str, Enum):
    IDLE = "idle"
    DEFINITION = "definition"
    RUN = "run"


class _Unassigned:
    """Marker for a declared variable whose assignment has not run yet."""

    _instance: Optional["_Unassigned"] = None

    def __new__(cls) -> "_Unassigned":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNASSIGNED"

    def __reduce__(self):
        return (_Unassigned, ())


UNASSIGNED = _Unassigned()


def is_assigned(value: Any) -> bool:
    return value is not UNASSIGNED


def declare(bindings: MutableMapping[str, Any], names: Iterable[str], *, reset: bool = False) -> List[str]:
    """
    Declare ``names`` in ``bindings``.

    Names that already hold a value are kept unless ``reset`` is true, in
    which case every name is set back to :data:`UNASSIGNED`.
    """
    declared = []
    for name in names:
        if reset or name not in bindings:
            bindings[name] = UNASSIGNED
            declared.append(name)
    return declared


def require_assigned(
    bindings: MutableMapping[str, Any],
    name: str,
    *,
    namespace: Optional[str] = None,
) -> Any:
    """Return the value bound to ``name``, failing if it is only declared."""
    if name not in bindings:
        raise NotFoundError(f"Variable '{name}' is not declared", namespace=namespace, name=name)
    value = bindings[name]
    if value is UNASSIGNED:
        raise UnassignedVariableError(
            f"Variable '{name}' is declared but its assignment has not run yet",
            namespace=namespace,
            name=name,
            hint="Assignments execute in the run phase, after every definition block.",
        )
    return value


class PhaseScheduler:
    """
    Tracks the process-wide current phase.

    Phase regions nest: loading unit B from inside unit A's definition block
    pushes B's phases on top of A's and restores A's on exit. Regions are
    exclusive across threads; ``lock`` is re-entrant and is shared with the
    module loader so the two can never acquire locks in opposite orders.
    """

    def __init__(self, lock: Optional[threading.RLock] = None) -> None:
        self.lock = lock if lock is not None else threading.RLock()
        self._stack: List[tuple] = []
        self._deferred: Dict[Optional[str], List[Callable[[], Any]]] = defaultdict(list)

    @property
    def current_phase(self) -> ExecutionPhase:
        if not self._stack:
            return ExecutionPhase.IDLE
        return self._stack[-1][0]

    @property
    def current_unit(self) -> Optional[str]:
        if not self._stack:
            return None
        return self._stack[-1][1]

    @property
    def depth(self) -> int:
        return len(self._stack)

    def in_definition(self) -> bool:
        return self.current_phase is ExecutionPhase.DEFINITION

    @contextmanager
    def enter(self, phase: ExecutionPhase, unit: Optional[str] = None) -> Iterator[ExecutionPhase]:
        """Hold ``phase`` for the duration of the block, then restore the prior one."""
        with self.lock:
            prior = self.current_phase
            self._stack.append((phase, unit))
            logger.debug(f"Phase {prior.value} -> {phase.value} ({unit or 'anonymous'})")
            try:
                yield phase
            finally:
                self._stack.pop()
                logger.debug(f"Phase {phase.value} -> {self.current_phase.value} ({unit or 'anonymous'})")

    def definition_block(self, unit: Optional[str] = None):
        return self.enter(ExecutionPhase.DEFINITION, unit)

    def run_definition_block(self, body: Callable[[], Any], unit: Optional[str] = None) -> Any:
        """
        Run ``body`` to completion in the definition phase and return its result.

        If ``body`` fails, actions it deferred for ``unit`` are discarded.
        """
        with self.definition_block(unit):
            try:
                return body()
            except Exception:
                dropped = self._deferred.pop(unit, [])
                if dropped:
                    logger.debug(f"Discarded {len(dropped)} deferred actions of {unit or 'anonymous'}")
                raise

    def run_phase(self, body: Callable[[], Any], unit: Optional[str] = None) -> Any:
        """Run ``body`` in the run phase after any actions deferred for ``unit``."""
        with self.enter(ExecutionPhase.RUN, unit):
            for action in self._deferred.pop(unit, []):
                action()
            return body()

    def defer(self, action: Callable[[], Any]) -> bool:
        """
        Postpone ``action`` to the start of the current unit's run phase.

        Outside a definition block there is nothing to wait for, so the
        action runs immediately. Returns True when the action was queued.
        """
        if not self.in_definition():
            action()
            return False
        self._deferred[self.current_unit].append(action)
        return True

    def pending(self, unit: Optional[str] = None) -> int:
        return len(self._deferred.get(unit, ()))


# Global scheduler instance
_global_scheduler: Optional[PhaseScheduler] = None


def get_scheduler() -> PhaseScheduler:
    """Get the process-wide phase scheduler."""
    global _global_scheduler
    if _global_scheduler is None:
        _global_scheduler = PhaseScheduler()
    return _global_scheduler


def reset_scheduler() -> None:
    """Reset the global scheduler (for testing)."""
    global _global_scheduler
    _global_scheduler = None

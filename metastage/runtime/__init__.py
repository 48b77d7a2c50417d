"""Phase scheduling for staged execution."""

from .phases import (
    UNASSIGNED,
    ExecutionPhase,
    PhaseScheduler,
    declare,
    get_scheduler,
    is_assigned,
    require_assigned,
    reset_scheduler,
)

__all__ = [
    "UNASSIGNED",
    "ExecutionPhase",
    "PhaseScheduler",
    "declare",
    "get_scheduler",
    "is_assigned",
    "require_assigned",
    "reset_scheduler",
]

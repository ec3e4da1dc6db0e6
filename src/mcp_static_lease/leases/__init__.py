"""Static lease reconciliation: reconciler, desired-state parser, tracked state, engine."""
from .engine import LeaseEngine
from .parser import LeaseConfigParser, ParseError
from .reconciler import LeaseReconciler, LeaseState
from .schema import (
    ApplyResult,
    ChangeType,
    DesiredLeases,
    LeaseChange,
    LeasePlan,
    RefreshReport,
)
from .state import LeaseStateStore

__all__ = [
    "LeaseEngine",
    "LeaseConfigParser",
    "ParseError",
    "LeaseReconciler",
    "LeaseState",
    "ApplyResult",
    "ChangeType",
    "DesiredLeases",
    "LeaseChange",
    "LeasePlan",
    "RefreshReport",
    "LeaseStateStore",
]

"""Desired state, plan and result types for lease reconciliation."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..models import ReservationEntry


class ChangeType(str, Enum):
    """Type of change in a plan."""
    CREATE = "create"
    UPDATE = "update"     # Same MAC, other fields differ: delete + create
    REPLACE = "replace"   # MAC changed: destroy old identity, create new
    DELETE = "delete"
    NO_CHANGE = "no_change"


@dataclass
class DesiredLeases:
    """Complete desired lease set for one appliance, keyed by resource name."""
    appliance_id: str
    leases: dict[str, ReservationEntry] = field(default_factory=dict)


@dataclass
class LeaseChange:
    """A single planned change."""
    name: str
    change_type: ChangeType
    current: Optional[ReservationEntry] = None
    desired: Optional[ReservationEntry] = None
    changed_fields: list[str] = field(default_factory=list)

    def describe(self) -> str:
        if self.change_type == ChangeType.CREATE and self.desired:
            return f"+ {self.name}: create {self.desired.mac_address} -> {self.desired.ip_address}"
        if self.change_type == ChangeType.DELETE and self.current:
            return f"- {self.name}: delete {self.current.mac_address}"
        if self.change_type == ChangeType.REPLACE and self.current and self.desired:
            return (
                f"-/+ {self.name}: replace {self.current.mac_address} "
                f"with {self.desired.mac_address}"
            )
        if self.change_type == ChangeType.UPDATE:
            return f"~ {self.name}: recreate ({', '.join(self.changed_fields)})"
        return f"  {self.name}: no change"

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "change": self.change_type.value,
            "current": self.current.to_dict() if self.current else None,
            "desired": self.desired.to_dict() if self.desired else None,
            "changed_fields": self.changed_fields,
        }


@dataclass
class LeasePlan:
    """Ordered changes needed to reach the desired state."""
    appliance_id: str
    changes: list[LeaseChange] = field(default_factory=list)

    @property
    def pending(self) -> list[LeaseChange]:
        return [c for c in self.changes if c.change_type != ChangeType.NO_CHANGE]

    @property
    def no_change(self) -> bool:
        return len(self.pending) == 0

    @property
    def total_changes(self) -> int:
        return len(self.pending)

    def summary(self) -> str:
        if self.no_change:
            return f"{self.appliance_id}: no changes, static leases match the desired state"
        lines = [f"{self.appliance_id}: {self.total_changes} change(s)"]
        lines.extend(f"  {c.describe()}" for c in self.pending)
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "appliance_id": self.appliance_id,
            "total_changes": self.total_changes,
            "changes": [c.to_dict() for c in self.pending],
        }


@dataclass
class RefreshReport:
    """Result of re-reading every tracked lease from the appliance."""
    appliance_id: str
    checked: int = 0
    drifted: list[str] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    # Tracked state after the refresh, keyed by resource name
    leases: dict[str, ReservationEntry] = field(default_factory=dict, repr=False)

    @property
    def in_sync(self) -> bool:
        return not (self.drifted or self.dropped or self.errors)

    def to_dict(self) -> dict:
        return {
            "appliance_id": self.appliance_id,
            "checked": self.checked,
            "in_sync": self.in_sync,
            "drifted": self.drifted,
            "dropped": self.dropped,
            "errors": self.errors,
        }


@dataclass
class ApplyResult:
    """Result of applying a plan."""
    success: bool = False
    dry_run: bool = False
    changes_made: list[str] = field(default_factory=list)
    error: Optional[str] = None
    error_context: Optional[str] = None
    outcomes: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "dry_run": self.dry_run,
            "changes_made": self.changes_made,
            "error": self.error,
            "error_context": self.error_context,
            "outcomes": self.outcomes,
        }

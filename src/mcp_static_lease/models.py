"""Reservation entries and operation outcomes."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


@dataclass(frozen=True)
class ReservationEntry:
    """Declared or observed state of one static lease.

    The hardware address is the entry's identity on the appliance. It is
    normalized to lowercase and can never be changed in place.
    """
    hostname: str
    mac_address: str
    ip_address: str
    enabled: bool = False

    def __post_init__(self):
        object.__setattr__(self, "mac_address", normalize_mac(self.mac_address))
        object.__setattr__(self, "hostname", self.hostname.strip())
        object.__setattr__(self, "ip_address", self.ip_address.strip())

    @property
    def id(self) -> str:
        return self.mac_address

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "hostname": self.hostname,
            "mac_address": self.mac_address,
            "ip_address": self.ip_address,
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ReservationEntry":
        return cls(
            hostname=str(data["hostname"]),
            mac_address=str(data["mac_address"]),
            ip_address=str(data["ip_address"]),
            enabled=bool(data.get("enabled", False)),
        )


def normalize_mac(mac: str) -> str:
    return mac.strip().lower()


class OutcomeKind(str, Enum):
    """Result variants of one reconciliation attempt."""
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    REJECTED = "rejected"
    ALERT_ABORTED = "alert_aborted"
    TRANSPORT_FAILURE = "transport_failure"


@dataclass
class OperationOutcome:
    """Outcome of one operation against the appliance.

    message carries the appliance's own text (dialog or overlay) whenever
    there is one.
    """
    kind: OutcomeKind
    entry: Optional[ReservationEntry] = None
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS

    @classmethod
    def success(
        cls,
        entry: Optional[ReservationEntry] = None,
        message: str = "",
        details: Optional[dict] = None,
    ) -> "OperationOutcome":
        return cls(OutcomeKind.SUCCESS, entry=entry, message=message, details=details or {})

    @classmethod
    def not_found(cls, message: str = "", details: Optional[dict] = None) -> "OperationOutcome":
        return cls(OutcomeKind.NOT_FOUND, message=message, details=details or {})

    @classmethod
    def rejected(cls, message: str, details: Optional[dict] = None) -> "OperationOutcome":
        return cls(OutcomeKind.REJECTED, message=message, details=details or {})

    @classmethod
    def alert_aborted(cls, message: str, details: Optional[dict] = None) -> "OperationOutcome":
        return cls(OutcomeKind.ALERT_ABORTED, message=message, details=details or {})

    @classmethod
    def transport_failure(cls, message: str, details: Optional[dict] = None) -> "OperationOutcome":
        return cls(OutcomeKind.TRANSPORT_FAILURE, message=message, details=details or {})

    def with_prefix(self, prefix: str) -> "OperationOutcome":
        """Copy with the message prefixed, e.g. by the failing update phase."""
        message = f"{prefix}: {self.message}" if self.message else prefix
        return OperationOutcome(self.kind, entry=self.entry, message=message, details=self.details)

    def to_dict(self) -> dict:
        result: dict[str, Any] = {
            "outcome": self.kind.value,
            "success": self.ok,
        }
        if self.entry is not None:
            result["entry"] = self.entry.to_dict()
        if self.message:
            result["message"] = self.message
        return result

    def __repr__(self) -> str:
        return f"OperationOutcome({self.kind.value}, message={self.message!r})"

"""Audit logging for lease changes.

Every create/update/delete/import driven through the engine is written as
one JSON line to a dedicated audit log, including the appliance's own
response text.
"""
import json
import logging
import os
from datetime import datetime, timezone
from dataclasses import dataclass, asdict
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

audit_logger = logging.getLogger("leasecraft.audit")

DEFAULT_AUDIT_DIR = "~/.leasecraft"


def setup_audit_logging(log_dir: Optional[str] = None) -> None:
    """Configure audit logging to file.

    Args:
        log_dir: Directory for audit logs. Defaults to ~/.leasecraft/
    """
    if log_dir is None:
        log_dir = os.path.expanduser(DEFAULT_AUDIT_DIR)

    Path(log_dir).mkdir(parents=True, exist_ok=True)

    audit_file = os.path.join(log_dir, "audit.log")

    audit_logger.setLevel(logging.INFO)
    audit_logger.handlers.clear()

    handler = RotatingFileHandler(
        audit_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=10,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)

    audit_logger.propagate = False


@dataclass
class ChangeRecord:
    """Record of a lease change."""
    timestamp: str
    appliance_id: str
    operation: str  # lease_create, lease_delete, lease_update, lease_import
    resource: str
    dry_run: bool
    success: bool
    parameters: dict
    before_state: Optional[dict] = None
    after_state: Optional[dict] = None
    output: str = ""
    error: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=None)

    @classmethod
    def from_json(cls, json_str: str) -> "ChangeRecord":
        data = json.loads(json_str)
        return cls(**data)


class ChangeTracker:
    """Write lease changes for one appliance to the audit log."""

    def __init__(self, appliance_id: str):
        self.appliance_id = appliance_id

    def log_change(
        self,
        operation: str,
        resource: str,
        parameters: dict,
        success: bool,
        output: str = "",
        error: Optional[str] = None,
        dry_run: bool = False,
        before_state: Optional[dict] = None,
        after_state: Optional[dict] = None,
    ) -> ChangeRecord:
        """Log a lease change.

        Args:
            operation: The operation performed (e.g., "lease_create")
            resource: Name of the lease resource in the desired config
            parameters: Parameters passed to the operation
            success: Whether the operation succeeded
            output: Appliance response text
            error: Error message if failed
            dry_run: Whether this was a dry-run (no actual changes)
            before_state: Tracked entry before the change
            after_state: Tracked entry after the change

        Returns:
            The ChangeRecord that was logged
        """
        record = ChangeRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            appliance_id=self.appliance_id,
            operation=operation,
            resource=resource,
            dry_run=dry_run,
            success=success,
            parameters=parameters,
            before_state=before_state,
            after_state=after_state,
            output=output[:1000] if output else "",  # Overlay text can be long
            error=error,
        )

        audit_logger.info(record.to_json())

        return record


def get_recent_changes(
    log_file: Optional[str] = None,
    appliance_id: Optional[str] = None,
    operation: Optional[str] = None,
    limit: int = 100,
) -> list[ChangeRecord]:
    """Read recent changes from audit log, most recent first."""
    if log_file is None:
        log_file = os.path.join(os.path.expanduser(DEFAULT_AUDIT_DIR), "audit.log")

    if not os.path.exists(log_file):
        return []

    records = []
    with open(log_file, "r") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                record = ChangeRecord.from_json(line)

                if appliance_id and record.appliance_id != appliance_id:
                    continue
                if operation and record.operation != operation:
                    continue

                records.append(record)
            except (json.JSONDecodeError, TypeError):
                continue  # Skip malformed lines

    return list(reversed(records[-limit:]))

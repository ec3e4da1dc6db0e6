"""Tests for the change audit log."""
import pytest

from mcp_static_lease.utils.audit_log import (
    ChangeTracker,
    audit_logger,
    get_recent_changes,
    setup_audit_logging,
)


@pytest.fixture
def audit_dir(tmp_path):
    setup_audit_logging(str(tmp_path))
    yield tmp_path
    for handler in list(audit_logger.handlers):
        handler.close()
        audit_logger.removeHandler(handler)


class TestChangeTracker:
    """Tests for writing and reading audit records."""

    def test_records_round_trip(self, audit_dir):
        tracker = ChangeTracker("home-gw")
        tracker.log_change(
            operation="lease_create",
            resource="printer1",
            parameters={"mac_address": "aa:bb:cc:dd:ee:ff"},
            success=True,
            output="The configuration has been applied.",
        )
        tracker.log_change(
            operation="lease_delete",
            resource="nas",
            parameters={"mac_address": "11:22:33:44:55:66"},
            success=False,
            error="existing lease not found: 11:22:33:44:55:66",
        )
        ChangeTracker("other-gw").log_change("lease_import", "cam", {}, success=True)

        log_file = str(audit_dir / "audit.log")
        records = get_recent_changes(log_file=log_file, appliance_id="home-gw")
        assert [r.operation for r in records] == ["lease_delete", "lease_create"]
        assert records[0].error.startswith("existing lease not found")

        creates = get_recent_changes(log_file=log_file, operation="lease_create")
        assert creates[0].output == "The configuration has been applied."

    def test_long_output_truncated(self, audit_dir):
        record = ChangeTracker("home-gw").log_change(
            "lease_create", "p", {}, success=True, output="x" * 5000
        )
        assert len(record.output) == 1000

    def test_missing_log(self, tmp_path):
        assert get_recent_changes(log_file=str(tmp_path / "none.log")) == []

"""Tracked lease state, one YAML file per appliance.

Layout:
    ~/.leasecraft/
    └── state/
        └── <appliance_id>.yaml   # resource name -> last known lease
"""
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import yaml

from ..models import ReservationEntry

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = Path.home() / ".leasecraft"


class LeaseStateStore:
    """Read and write tracked leases."""

    def __init__(self, base_dir: Optional[Path] = None):
        self.base_dir = Path(base_dir) if base_dir else DEFAULT_STATE_DIR
        self.state_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Lease state store at {self.state_dir}")

    @property
    def state_dir(self) -> Path:
        return self.base_dir / "state"

    def path_for(self, appliance_id: str) -> Path:
        return self.state_dir / f"{appliance_id}.yaml"

    def load(self, appliance_id: str) -> dict[str, ReservationEntry]:
        """Tracked leases for an appliance. Empty if nothing is tracked yet."""
        path = self.path_for(appliance_id)
        if not path.exists():
            return {}

        data = yaml.safe_load(path.read_text()) or {}
        leases = {}
        for name, lease in (data.get("leases") or {}).items():
            try:
                leases[str(name)] = ReservationEntry.from_dict(lease)
            except (KeyError, TypeError, AttributeError) as e:
                logger.error(f"Skipping malformed state entry '{name}' in {path}: {e}")
        return leases

    def save(self, appliance_id: str, leases: dict[str, ReservationEntry]) -> Path:
        path = self.path_for(appliance_id)
        document = {
            "appliance_id": appliance_id,
            "updated_at": datetime.now(timezone.utc).isoformat(),
            "leases": {name: entry.to_dict() for name, entry in sorted(leases.items())},
        }
        tmp = path.with_suffix(".yaml.tmp")
        tmp.write_text(yaml.dump(document, default_flow_style=False, sort_keys=False))
        tmp.replace(path)
        logger.debug(f"Saved {len(leases)} tracked lease(s) for {appliance_id}")
        return path

    def put(self, appliance_id: str, name: str, entry: ReservationEntry) -> None:
        leases = self.load(appliance_id)
        leases[name] = entry
        self.save(appliance_id, leases)

    def remove(self, appliance_id: str, name: str) -> Optional[ReservationEntry]:
        leases = self.load(appliance_id)
        removed = leases.pop(name, None)
        if removed is not None:
            self.save(appliance_id, leases)
        return removed

"""Appliance inventory management from YAML configuration."""
import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml

from ..appliance import ApplianceConfig, SessionGate, create_appliance_config
from ..leases.engine import LeaseEngine
from ..leases.reconciler import LeaseReconciler
from ..leases.state import LeaseStateStore

logger = logging.getLogger(__name__)

CONFIG_ENV = "LEASECRAFT_CONFIG"


class ApplianceInventory:
    """Manages the appliance inventory loaded from YAML config.

    ```yaml
    defaults:
      username: admin
      password_env: APPLIANCE_PASSWORD
    appliances:
      home-gw:
        type: icotera-i4850
        host: 192.168.1.1
    ```

    One SessionGate is kept per appliance, so every caller going through
    the same inventory shares the appliance's session lock.
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        state_store: Optional[LeaseStateStore] = None,
        launcher: Optional[Any] = None,
    ):
        self.config_path = config_path or self._find_config()
        self.launcher = launcher
        self._state_store = state_store
        self._config: dict = {}
        self._gates: dict[str, SessionGate] = {}
        self._reconcilers: dict[str, LeaseReconciler] = {}
        self._load_config()

    def _find_config(self) -> str:
        """Find the appliances.yaml config file."""
        env_path = os.environ.get(CONFIG_ENV)
        if env_path:
            return env_path

        search_paths = [
            Path.cwd() / "configs" / "appliances.yaml",
            Path.cwd() / "appliances.yaml",
            Path.home() / ".config" / "leasecraft" / "appliances.yaml",
            Path("/etc/leasecraft/appliances.yaml"),
        ]

        for path in search_paths:
            if path.exists():
                return str(path)

        raise FileNotFoundError(
            "Could not find appliances.yaml. Create one in ./configs/appliances.yaml"
        )

    def _load_config(self) -> None:
        with open(self.config_path) as f:
            self._config = yaml.safe_load(f) or {}

        defaults = self._config.get("defaults") or {}
        for appliance_id, appliance_config in (self._config.get("appliances") or {}).items():
            for key, value in defaults.items():
                if key not in appliance_config:
                    appliance_config[key] = value
            appliance_config.setdefault("name", appliance_id)

        logger.debug(f"Loaded {len(self.get_appliance_ids())} appliance(s) from {self.config_path}")

    @property
    def state_store(self) -> LeaseStateStore:
        if self._state_store is None:
            self._state_store = LeaseStateStore()
        return self._state_store

    def get_appliance_ids(self) -> list[str]:
        return list((self._config.get("appliances") or {}).keys())

    def get_appliance_config(self, appliance_id: str) -> dict:
        """Get raw config for an appliance."""
        appliances = self._config.get("appliances") or {}
        if appliance_id not in appliances:
            raise KeyError(f"Unknown appliance: {appliance_id}")
        return appliances[appliance_id]

    def get_config(self, appliance_id: str) -> ApplianceConfig:
        return create_appliance_config(self.get_appliance_config(appliance_id))

    def get_gate(self, appliance_id: str) -> SessionGate:
        """Get or create the session gate for an appliance."""
        if appliance_id not in self._gates:
            self._gates[appliance_id] = SessionGate(
                appliance_id, self.get_config(appliance_id), launcher=self.launcher
            )
        return self._gates[appliance_id]

    def get_reconciler(self, appliance_id: str) -> LeaseReconciler:
        if appliance_id not in self._reconcilers:
            self._reconcilers[appliance_id] = LeaseReconciler(self.get_gate(appliance_id))
        return self._reconcilers[appliance_id]

    def get_engine(self, appliance_id: str) -> LeaseEngine:
        return LeaseEngine(self.get_reconciler(appliance_id), self.state_store)

"""Parser for desired lease configuration.

Converts dict/YAML input to a DesiredLeases object:

    appliance: home-gw
    leases:
      printer1:
        hostname: printer1
        mac_address: AA:BB:CC:DD:EE:FF
        ip_address: 192.168.1.50
        enabled: true
"""
import ipaddress
import re
from pathlib import Path
from typing import Any

import yaml

from ..models import ReservationEntry
from .schema import DesiredLeases

MAC_PATTERN = re.compile(r"^[0-9a-f]{2}(:[0-9a-f]{2}){5}$", re.IGNORECASE)


class ParseError(Exception):
    """Error parsing desired lease configuration."""
    pass


class LeaseConfigParser:
    """Parse desired leases from dict/YAML format."""

    def parse(self, config: dict[str, Any]) -> DesiredLeases:
        """
        Parse a configuration dict into a DesiredLeases object.

        Raises:
            ParseError: If config is invalid
        """
        if not isinstance(config, dict):
            raise ParseError("Config must be a mapping")

        appliance_id = config.get("appliance_id") or config.get("appliance")
        if not appliance_id:
            raise ParseError("Missing required field: appliance_id or appliance")

        leases_config = config.get("leases") or {}
        if not isinstance(leases_config, dict):
            raise ParseError("'leases' must be a mapping of name -> lease")

        leases: dict[str, ReservationEntry] = {}
        seen_macs: dict[str, str] = {}
        for name, lease_config in leases_config.items():
            entry = self._parse_lease(str(name), lease_config)
            if entry.mac_address in seen_macs:
                raise ParseError(
                    f"Lease '{name}' reuses MAC {entry.mac_address} "
                    f"already declared by '{seen_macs[entry.mac_address]}'"
                )
            seen_macs[entry.mac_address] = str(name)
            leases[str(name)] = entry

        return DesiredLeases(appliance_id=str(appliance_id), leases=leases)

    def parse_file(self, path: str | Path) -> DesiredLeases:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return self.parse(data)

    def _parse_lease(self, name: str, config: Any) -> ReservationEntry:
        if not isinstance(config, dict):
            raise ParseError(f"Lease '{name}' must be a mapping")

        for key in ("hostname", "mac_address", "ip_address"):
            if not config.get(key):
                raise ParseError(f"Lease '{name}' is missing required field: {key}")

        mac = str(config["mac_address"]).strip()
        if not MAC_PATTERN.match(mac):
            raise ParseError(f"Lease '{name}' has invalid MAC address: {mac}")

        ip = str(config["ip_address"]).strip()
        try:
            ipaddress.IPv4Address(ip)
        except ValueError:
            raise ParseError(f"Lease '{name}' has invalid IPv4 address: {ip}")

        enabled = config.get("enabled", False)
        if not isinstance(enabled, bool):
            raise ParseError(f"Lease '{name}': enabled must be true or false")

        return ReservationEntry(
            hostname=str(config["hostname"]),
            mac_address=mac,
            ip_address=ip,
            enabled=enabled,
        )

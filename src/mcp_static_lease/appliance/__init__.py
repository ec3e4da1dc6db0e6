"""Appliance session layer: gate, step sequencer, dialog classifier, DOM extractor."""
from .base import ApplianceConfig, ApplianceSession, ApplianceStatus, check_reachable
from .gate import SessionGate, PlaywrightLauncher
from .steps import StepContext, StepSequence, run_sequence

__all__ = [
    "ApplianceConfig",
    "ApplianceSession",
    "ApplianceStatus",
    "check_reachable",
    "SessionGate",
    "PlaywrightLauncher",
    "StepContext",
    "StepSequence",
    "run_sequence",
]

# Appliance type registry
APPLIANCE_TYPES = {
    "icotera-i4850": ApplianceConfig,
}


def create_appliance_config(config: dict) -> ApplianceConfig:
    """Build an ApplianceConfig from an inventory entry."""
    appliance_type = config.get("type", "").lower()
    if appliance_type not in APPLIANCE_TYPES:
        raise ValueError(f"Unknown appliance type: {appliance_type}")
    return APPLIANCE_TYPES[appliance_type](**config)

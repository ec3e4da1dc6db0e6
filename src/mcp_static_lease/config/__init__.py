"""Configuration management."""
from .inventory import ApplianceInventory

__all__ = ["ApplianceInventory"]

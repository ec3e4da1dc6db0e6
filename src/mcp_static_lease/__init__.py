"""Static DHCP lease management for single-session web-UI appliances."""

__version__ = "0.1.0"

"""MAC address vendor lookups backed by a self-refreshing Wireshark manuf database."""

__version__ = "1.0.0"

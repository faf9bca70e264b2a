"""Local network discovery."""

from tvremote.discovery.ssdp import DiscoveredDevice, build_msearch, discover_devices, filter_devices, parse_ssdp_response

__all__ = [
    "DiscoveredDevice",
    "build_msearch",
    "discover_devices",
    "filter_devices",
    "parse_ssdp_response",
]

"""SSDP discovery of webOS TVs on the local network."""

from __future__ import annotations

import asyncio
import socket
from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger

from tvremote.config.schema import DiscoveryConfig


@dataclass(slots=True)
class DiscoveredDevice:
    address: str
    location: str

    def to_dict(self) -> dict[str, Any]:
        return {"address": self.address, "location": self.location}


def build_msearch(config: DiscoveryConfig) -> bytes:
    lines = [
        "M-SEARCH * HTTP/1.1",
        f"HOST: {config.multicast_host}:{config.multicast_port}",
        'MAN: "ssdp:discover"',
        f"ST: {config.search_target}",
        f"MX: {int(config.mx_seconds)}",
        "",
        "",
    ]
    return "\r\n".join(lines).encode("ascii")


def parse_ssdp_response(data: bytes | str) -> dict[str, str]:
    """Parse SSDP response headers; keys are upper-cased."""
    text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else str(data)
    headers: dict[str, str] = {}
    for line in text.splitlines()[1:]:
        name, sep, value = line.partition(":")
        if not sep:
            continue
        headers[name.strip().upper()] = value.strip()
    return headers


class _SSDPProtocol(asyncio.DatagramProtocol):
    def __init__(self) -> None:
        self.responses: list[tuple[str, str]] = []

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        location = parse_ssdp_response(data).get("LOCATION", "")
        if location:
            self.responses.append((addr[0], location))

    def error_received(self, exc: Exception) -> None:
        logger.warning(f"SSDP socket error: {exc}")


async def collect_responses(config: DiscoveryConfig, timeout_s: float) -> list[tuple[str, str]]:
    """Send one M-SEARCH and gather `(address, location)` pairs until timeout."""
    loop = asyncio.get_running_loop()
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 2)
    sock.bind(("", 0))
    transport, protocol = await loop.create_datagram_endpoint(_SSDPProtocol, sock=sock)
    try:
        transport.sendto(build_msearch(config), (config.multicast_host, int(config.multicast_port)))
        await asyncio.sleep(max(0.1, float(timeout_s)))
    finally:
        transport.close()
    return list(protocol.responses)


async def verify_device(client: httpx.AsyncClient, location: str, vendor_keyword: str) -> bool:
    try:
        resp = await client.get(location)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        logger.debug(f"Device description fetch failed for {location}: {e}")
        return False
    return vendor_keyword.lower() in resp.text.lower()


async def filter_devices(
    responses: list[tuple[str, str]],
    config: DiscoveryConfig,
    *,
    client: httpx.AsyncClient | None = None,
) -> list[DiscoveredDevice]:
    """Keep responders whose description mentions the vendor, one per address."""
    own_client = client is None
    http = client or httpx.AsyncClient(timeout=config.verify_timeout_seconds)
    found: dict[str, DiscoveredDevice] = {}
    try:
        for address, location in responses:
            if address in found:
                continue
            if await verify_device(http, location, config.vendor_keyword):
                found[address] = DiscoveredDevice(address=address, location=location)
    finally:
        if own_client:
            await http.aclose()
    return list(found.values())


async def discover_devices(
    config: DiscoveryConfig | None = None,
    *,
    timeout_s: float | None = None,
    client: httpx.AsyncClient | None = None,
) -> list[DiscoveredDevice]:
    cfg = config or DiscoveryConfig()
    window = cfg.timeout_seconds if timeout_s is None else timeout_s
    logger.info(f"Searching for TVs for {window:g}s")
    responses = await collect_responses(cfg, window)
    devices = await filter_devices(responses, cfg, client=client)
    logger.info(f"Discovered {len(devices)} TV(s)")
    return devices

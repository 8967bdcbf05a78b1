"""Default network discovery from the kernel routing table.

Uses iproute2's JSON output:
    ip -j route show default   -> gateway and outgoing interface
    ip -j addr show dev <if>   -> IPv4 address, prefix length and MAC
"""

from __future__ import annotations

import ipaddress
import json
import subprocess
from typing import Any, Callable

from hostagent.exceptions import NetworkResolutionError
from hostagent.logging import LoggerFactory
from hostagent.settings.models import Network
from hostagent.system.commands import run_command


log = LoggerFactory.for_network()


def prefix_to_netmask(prefix_length: int) -> str:
    """Convert an IPv4 prefix length (24) to a dotted netmask (255.255.255.0)."""
    return str(ipaddress.IPv4Network(f"0.0.0.0/{prefix_length}").netmask)


class IpRouteNetworkResolver:
    def __init__(self, runner: Callable[..., subprocess.CompletedProcess] = run_command):
        self._runner = runner

    def get_default_network(self) -> Network:
        """Build a Network from the default route and its interface.

        Raises:
            NetworkResolutionError: If there is no default route, the
                interface has no IPv4 address, or ``ip`` fails
        """
        routes = self._ip_json(["ip", "-j", "route", "show", "default"])
        route = next((r for r in routes if r.get("dst") == "default"), None)
        if route is None or not route.get("dev"):
            raise NetworkResolutionError("no default route")

        interface = route["dev"]
        links = self._ip_json(["ip", "-j", "addr", "show", "dev", interface])
        if not links:
            raise NetworkResolutionError(f"interface {interface} not found")
        link = links[0]

        address = next(
            (a for a in link.get("addr_info", []) if a.get("family") == "inet"),
            None,
        )
        if address is None:
            raise NetworkResolutionError(f"interface {interface} has no IPv4 address")

        try:
            netmask = prefix_to_netmask(int(address["prefixlen"]))
            ip = address["local"]
        except (KeyError, TypeError, ValueError) as error:
            raise NetworkResolutionError(
                f"unexpected address data for {interface}: {error}"
            ) from error

        network = Network(
            ip=ip,
            netmask=netmask,
            gateway=route.get("gateway", ""),
            mac=link.get("address", ""),
        )
        log.debug(f"Default network is {interface} {network.ip}/{network.netmask}")
        return network

    def _ip_json(self, command: list[str]) -> list[dict[str, Any]]:
        try:
            result = self._runner(command, check=True, log_output=False)
        except (subprocess.CalledProcessError, OSError) as error:
            raise NetworkResolutionError(error) from error
        try:
            data = json.loads(result.stdout or "[]")
        except ValueError as error:
            raise NetworkResolutionError(
                f"parsing output of {' '.join(command)}: {error}"
            ) from error
        if not isinstance(data, list):
            raise NetworkResolutionError(f"unexpected output of {' '.join(command)}")
        return data

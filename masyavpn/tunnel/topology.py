"""Discovery of the host's default gateway, its interface and the endpoint IP."""

import ipaddress
import socket
from typing import Optional

import dns.asyncresolver
import dns.exception
import psutil

from .command_factory import get_command_factory
from .commands import CommandError
from .exceptions import EndpointResolutionFailed, GatewayNotFound, InterfaceNotFound
from .utils import run_command
from ..logging_utility import logger


def is_ipv4(value: str) -> bool:
    try:
        ipaddress.IPv4Address(value)
        return True
    except ValueError:
        return False


def parse_gateway_query(stdout: str) -> Optional[str]:
    """First usable IPv4 token of a default-route query."""
    for token in stdout.split():
        if is_ipv4(token) and token != "0.0.0.0":
            return token
    return None


def parse_route_table(stdout: str, column: int) -> Optional[str]:
    """Gateway column of the first `0.0.0.0` destination row."""
    for line in stdout.splitlines():
        parts = line.split()
        if len(parts) >= 4 and parts[0] == "0.0.0.0":
            gateway = parts[column]
            if is_ipv4(gateway) and gateway != "0.0.0.0":
                return gateway
    return None


class NetworkTopologyResolver:
    def __init__(self, factory=None):
        self.factory = factory or get_command_factory()

    async def resolve_gateway(self) -> str:
        """
        Find the default IPv4 gateway.

        Returns:
            Gateway IP address
        """
        try:
            stdout, _ = await run_command(self.factory.default_gateway())
            gateway = parse_gateway_query(stdout)
            if gateway:
                logger.info(f"Default gateway: {gateway}")
                return gateway
            logger.warning("Default route query returned no gateway, trying route table")
        except CommandError as e:
            logger.warning(f"Default route query failed, trying route table: {e}")

        try:
            stdout, _ = await run_command(self.factory.route_table())
        except CommandError as e:
            raise GatewayNotFound(f"Could not find default gateway: {e}")

        gateway = parse_route_table(stdout, self.factory.route_table_gateway_column)
        if not gateway:
            raise GatewayNotFound("Could not find default gateway")
        logger.info(f"Default gateway (route table): {gateway}")
        return gateway

    @staticmethod
    def resolve_gateway_interface(gateway_ip: str) -> str:
        """
        Find the interface whose IPv4 subnet contains the gateway.

        Must run before any adapter or route change, or it finds the
        tunnel adapter instead of the physical one.

        Args:
            gateway_ip: Default gateway address

        Returns:
            Interface name
        """
        gateway = ipaddress.IPv4Address(gateway_ip)
        for name, addresses in psutil.net_if_addrs().items():
            for address in addresses:
                if address.family != socket.AF_INET or not address.netmask:
                    continue
                if ipaddress.IPv4Address(address.address).is_loopback:
                    continue
                subnet = ipaddress.IPv4Network(f"{address.address}/{address.netmask}", strict=False)
                if gateway in subnet:
                    logger.info(f"Gateway {gateway_ip} is reachable via interface {name}")
                    return name
        raise InterfaceNotFound(f"No interface found for gateway {gateway_ip}")

    @staticmethod
    async def resolve_endpoint_ip(endpoint: str) -> str:
        """
        Resolve the tunnel endpoint to an IPv4 address.

        Args:
            endpoint: IPv4 literal or hostname, optionally with ':port'

        Returns:
            IPv4 address
        """
        host = endpoint.split(":")[0] if ":" in endpoint else endpoint
        if is_ipv4(host):
            return host

        try:
            answer = await dns.asyncresolver.resolve(host, "A")
        except dns.exception.DNSException as e:
            raise EndpointResolutionFailed(f"Failed to resolve {host}: {e}")

        addresses = [record.to_text() for record in answer]
        if not addresses:
            raise EndpointResolutionFailed(f"Failed to resolve {host}: no A records")
        return addresses[0]

"""Factories for creating platform-specific tunnel commands."""

import os
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from .commands import (
    Command,
    ENGINE_OPTIONS,
    BRIDGE_OPTIONS,
    NETSH_IPV4,
    NETSH_IPV6,
    ROUTE,
    ROUTE_PRINT,
    ROUTE_NUMERIC,
    IPCONFIG_FLUSH,
    TASKKILL,
    GET_DEFAULT_ROUTE,
    IP,
    IP_ADDR,
    IP6_ADDR,
    IP_ROUTE,
    IP4_ROUTE,
    IP6_ROUTE,
    RESOLVECTL,
    PKILL,
)
from .models import DnsProvider


class CommandFactory(ABC):
    """
    Engine commands shared by every platform, plus the network and process
    commands each platform factory must provide.
    """

    # Column holding the gateway in a `0.0.0.0` row of route_table() output
    route_table_gateway_column = 2

    @staticmethod
    def validate_engine_config(binary: Path, config_path: Path) -> List[str]:
        """Create proxy engine validate-only command."""
        return (
            Command.from_binary(binary, ENGINE_OPTIONS)
            .with_option("test")
            .with_option("config", str(config_path))
            .build()
        )

    @staticmethod
    def start_engine(binary: Path, config_path: Path) -> List[str]:
        """Create proxy engine start command."""
        return Command.from_binary(binary, ENGINE_OPTIONS).with_option("config", str(config_path)).build()

    @staticmethod
    def bridge_device(adapter: str) -> str:
        return f"tun://{adapter}"

    @staticmethod
    def bridge_proxy(socks_port: int) -> str:
        return f"socks5://127.0.0.1:{socks_port}"

    @classmethod
    def start_bridge(cls, binary: Path, adapter: str, socks_port: int) -> List[str]:
        """Create tunnel adapter bridge start command."""
        return (
            Command.from_binary(binary, BRIDGE_OPTIONS)
            .with_options(
                tcp_auto_tuning=None,
                device=cls.bridge_device(adapter),
                proxy=cls.bridge_proxy(socks_port),
            )
            .build()
        )

    @staticmethod
    @abstractmethod
    def default_gateway() -> List[str]:
        """Query the OS for the default IPv4 gateway."""

    @staticmethod
    @abstractmethod
    def route_table() -> List[str]:
        """Dump the IPv4 routing table."""

    @staticmethod
    @abstractmethod
    def assign_static_address(adapter: str, ipv4: str, mask: str, ipv6: str, prefix: int) -> List[List[str]]:
        pass

    @staticmethod
    @abstractmethod
    def revert_static_address(adapter: str) -> List[List[str]]:
        pass

    @staticmethod
    @abstractmethod
    def assign_dns(adapter: str, provider: DnsProvider, original_interface: Optional[str] = None) -> List[List[str]]:
        pass

    @staticmethod
    @abstractmethod
    def revert_dns(adapter: str, original_interface: Optional[str] = None) -> List[List[str]]:
        pass

    @staticmethod
    @abstractmethod
    def flush_dns() -> List[str]:
        pass

    @staticmethod
    @abstractmethod
    def add_default_routes(adapter: str, ipv4_gateway: str, ipv6_gateway: str) -> List[List[str]]:
        pass

    @staticmethod
    @abstractmethod
    def delete_default_routes(adapter: str, ipv4_gateway: str, ipv6_gateway: str) -> List[List[str]]:
        pass

    @staticmethod
    @abstractmethod
    def add_host_route(ip: str, gateway: str) -> List[str]:
        pass

    @staticmethod
    @abstractmethod
    def delete_host_route(ip: str) -> List[str]:
        pass

    @staticmethod
    @abstractmethod
    def kill_by_name(image: str) -> List[str]:
        """Force-kill every process running the given executable."""

    @staticmethod
    @abstractmethod
    def process_not_found(returncode: int, output: str) -> bool:
        """Whether a failed kill_by_name only means nothing was running."""


class WindowsCommandFactory(CommandFactory):
    """netsh / route / taskkill commands."""

    route_table_gateway_column = 2

    @staticmethod
    def default_gateway() -> List[str]:
        return GET_DEFAULT_ROUTE.build()

    @staticmethod
    def route_table() -> List[str]:
        return ROUTE_PRINT.build()

    @staticmethod
    def assign_static_address(adapter: str, ipv4: str, mask: str, ipv6: str, prefix: int) -> List[List[str]]:
        return [
            NETSH_IPV4.with_args("set", "address")
            .with_params(name=adapter, source="static", addr=ipv4, mask=mask).build(),
            NETSH_IPV6.with_args("set", "address")
            .with_params(interface=adapter, address=f"{ipv6}/{prefix}", store="persistent").build(),
        ]

    @staticmethod
    def revert_static_address(adapter: str) -> List[List[str]]:
        return [
            NETSH_IPV4.with_args("set", "address").with_params(name=adapter, source="dhcp").build(),
            NETSH_IPV6.with_args("set", "address").with_params(name=adapter, source="dhcp").build(),
        ]

    @staticmethod
    def _set_dns(netsh: Command, interface: str, primary: str, secondary: str) -> List[List[str]]:
        return [
            netsh.with_args("set", "dnsservers")
            .with_params(name=interface).with_arg("static")
            .with_params(address=primary, register="none", validate="no").build(),
            netsh.with_args("add", "dnsservers")
            .with_params(name=interface, address=secondary, index=2, validate="no").build(),
        ]

    @classmethod
    def assign_dns(cls, adapter: str, provider: DnsProvider, original_interface: Optional[str] = None) -> List[List[str]]:
        commands = cls._set_dns(NETSH_IPV4, adapter, *provider.ipv4)
        commands += cls._set_dns(NETSH_IPV6, adapter, *provider.ipv6)
        if original_interface:
            commands += cls._set_dns(NETSH_IPV4, original_interface, *provider.ipv4)
        return commands

    @staticmethod
    def revert_dns(adapter: str, original_interface: Optional[str] = None) -> List[List[str]]:
        commands = []
        if original_interface:
            commands.append(
                NETSH_IPV4.with_args("set", "dnsservers").with_params(name=original_interface, source="dhcp").build()
            )
        commands.append(NETSH_IPV4.with_args("set", "dnsservers").with_params(name=adapter, source="dhcp").build())
        commands.append(NETSH_IPV6.with_args("set", "dnsservers").with_params(name=adapter, source="dhcp").build())
        return commands

    @staticmethod
    def flush_dns() -> List[str]:
        return IPCONFIG_FLUSH.build()

    @staticmethod
    def add_default_routes(adapter: str, ipv4_gateway: str, ipv6_gateway: str) -> List[List[str]]:
        return [
            NETSH_IPV4.with_args("add", "route", "0.0.0.0/0", adapter, ipv4_gateway).with_params(metric=1).build(),
            NETSH_IPV6.with_args("add", "route", "::/0", adapter, ipv6_gateway).with_params(metric=1).build(),
        ]

    @staticmethod
    def delete_default_routes(adapter: str, ipv4_gateway: str, ipv6_gateway: str) -> List[List[str]]:
        return [
            NETSH_IPV4.with_args("delete", "route", "0.0.0.0/0", adapter, ipv4_gateway).build(),
            NETSH_IPV6.with_args("delete", "route", "::/0", adapter, ipv6_gateway).build(),
        ]

    @staticmethod
    def add_host_route(ip: str, gateway: str) -> List[str]:
        return ROUTE.with_args("add", ip, "mask", "255.255.255.255", gateway).build()

    @staticmethod
    def delete_host_route(ip: str) -> List[str]:
        return ROUTE.with_args("delete", ip).build()

    @staticmethod
    def kill_by_name(image: str) -> List[str]:
        return TASKKILL.with_arg(image).build()

    @staticmethod
    def process_not_found(returncode: int, output: str) -> bool:
        # taskkill exits with 128 when no process matches the image name
        return returncode == 128 or "not found" in output.lower()


class LinuxCommandFactory(CommandFactory):
    """ip / resolvectl / pkill commands, elevated with sudo when not root."""

    route_table_gateway_column = 1

    @staticmethod
    def _build(cmd: Command) -> List[str]:
        if hasattr(os, "geteuid") and os.geteuid() != 0:
            cmd = cmd.as_sudo()
        return cmd.build()

    @staticmethod
    def default_gateway() -> List[str]:
        return IP4_ROUTE.with_args("show", "default").build()

    @staticmethod
    def route_table() -> List[str]:
        return ROUTE_NUMERIC.build()

    @classmethod
    def assign_static_address(cls, adapter: str, ipv4: str, mask: str, ipv6: str, prefix: int) -> List[List[str]]:
        ipv4_prefix = sum(bin(int(octet)).count("1") for octet in mask.split("."))
        return [
            cls._build(IP_ADDR.with_args("replace", f"{ipv4}/{ipv4_prefix}", "dev", adapter)),
            cls._build(IP6_ADDR.with_args("replace", f"{ipv6}/{prefix}", "dev", adapter)),
            cls._build(IP.with_args("link", "set", "dev", adapter, "up")),
        ]

    @classmethod
    def revert_static_address(cls, adapter: str) -> List[List[str]]:
        return [cls._build(IP_ADDR.with_args("flush", "dev", adapter))]

    @classmethod
    def assign_dns(cls, adapter: str, provider: DnsProvider, original_interface: Optional[str] = None) -> List[List[str]]:
        commands = [
            cls._build(RESOLVECTL.with_args("dns", adapter, *provider.ipv4, *provider.ipv6)),
            cls._build(RESOLVECTL.with_args("domain", adapter, "~.")),
        ]
        if original_interface:
            commands.append(cls._build(RESOLVECTL.with_args("dns", original_interface, *provider.ipv4)))
        return commands

    @classmethod
    def revert_dns(cls, adapter: str, original_interface: Optional[str] = None) -> List[List[str]]:
        commands = []
        if original_interface:
            commands.append(cls._build(RESOLVECTL.with_args("revert", original_interface)))
        commands.append(cls._build(RESOLVECTL.with_args("revert", adapter)))
        return commands

    @classmethod
    def flush_dns(cls) -> List[str]:
        return cls._build(RESOLVECTL.with_arg("flush-caches"))

    @classmethod
    def add_default_routes(cls, adapter: str, ipv4_gateway: str, ipv6_gateway: str) -> List[List[str]]:
        # A TUN device is point-to-point, the route needs no next hop
        return [
            cls._build(IP4_ROUTE.with_args("add", "default", "dev", adapter, "metric", "1")),
            cls._build(IP6_ROUTE.with_args("add", "default", "dev", adapter, "metric", "1")),
        ]

    @classmethod
    def delete_default_routes(cls, adapter: str, ipv4_gateway: str, ipv6_gateway: str) -> List[List[str]]:
        return [
            cls._build(IP4_ROUTE.with_args("del", "default", "dev", adapter, "metric", "1")),
            cls._build(IP6_ROUTE.with_args("del", "default", "dev", adapter, "metric", "1")),
        ]

    @classmethod
    def add_host_route(cls, ip: str, gateway: str) -> List[str]:
        return cls._build(IP_ROUTE.with_args("add", f"{ip}/32", "via", gateway))

    @classmethod
    def delete_host_route(cls, ip: str) -> List[str]:
        return cls._build(IP_ROUTE.with_args("del", f"{ip}/32"))

    @classmethod
    def kill_by_name(cls, image: str) -> List[str]:
        return cls._build(PKILL.with_arg(image))

    @staticmethod
    def process_not_found(returncode: int, output: str) -> bool:
        # pkill exits with 1 when no process matched
        return returncode == 1


def get_command_factory(platform: Optional[str] = None):
    """Pick the command factory for the running platform."""
    platform = platform or sys.platform
    if platform == "win32":
        return WindowsCommandFactory
    return LinuxCommandFactory

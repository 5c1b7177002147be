"""Host network mutations for the virtual tunnel adapter."""

from typing import List, Optional

from .command_factory import get_command_factory
from .commands import CommandError
from .exceptions import PlumbingFailed
from .settings import Settings
from .utils import best_effort, run_command
from ..logging_utility import logger


class NetworkPlumbing:
    """
    Addressing, DNS and routing changes around the virtual adapter.

    Forward operations raise PlumbingFailed naming the sub-step that
    failed. Reverse operations run every command best-effort and never
    raise.
    """

    def __init__(self, settings: Settings, factory=None):
        self.settings = settings
        self.factory = factory or get_command_factory()

    async def _apply(self, step: str, commands: List[List[str]]) -> None:
        for cmd in commands:
            try:
                await run_command(cmd)
            except CommandError as e:
                logger.error(f"{step}: {e}")
                raise PlumbingFailed(step, e.output or str(e))

    @staticmethod
    async def _revert(step: str, commands: List[List[str]]) -> None:
        for cmd in commands:
            await best_effort(f"{step} ({' '.join(cmd)})", run_command(cmd))

    async def assign_static_address(self) -> None:
        s = self.settings
        logger.info(f"Assigning static address {s.adapter_ipv4} to {s.adapter_name}")
        await self._apply("assign static address", self.factory.assign_static_address(
            s.adapter_name, s.adapter_ipv4, s.adapter_ipv4_mask, s.adapter_ipv6, s.adapter_ipv6_prefix,
        ))

    async def remove_static_address(self) -> None:
        await self._revert("remove static address", self.factory.revert_static_address(self.settings.adapter_name))

    async def assign_dns(self, original_interface: Optional[str]) -> None:
        provider = self.settings.active_dns
        logger.info(f"Assigning {provider.name} DNS to {self.settings.adapter_name}"
                    + (f" and {original_interface}" if original_interface else ""))
        await self._apply("assign DNS", self.factory.assign_dns(
            self.settings.adapter_name, provider, original_interface,
        ))
        await self._apply("flush DNS cache", [self.factory.flush_dns()])

    async def remove_dns(self, original_interface: Optional[str]) -> None:
        await self._revert("remove DNS", self.factory.revert_dns(self.settings.adapter_name, original_interface))
        await self._revert("flush DNS cache", [self.factory.flush_dns()])

    def _default_route_args(self) -> tuple:
        s = self.settings
        return s.adapter_name, s.adapter_ipv4, s.adapter_ipv6

    async def install_default_route(self) -> None:
        logger.info(f"Routing all traffic through {self.settings.adapter_name}")
        await self._apply("install default route", self.factory.add_default_routes(*self._default_route_args()))

    async def remove_default_route(self) -> None:
        await self._revert("remove default route", self.factory.delete_default_routes(*self._default_route_args()))

    async def install_server_exception_route(self, server_ip: str, gateway_ip: str) -> None:
        """Keep the tunnel server reachable through the original gateway."""
        logger.info(f"Routing tunnel server {server_ip} via original gateway {gateway_ip}")
        await self._apply("install server exception route", [self.factory.add_host_route(server_ip, gateway_ip)])

    async def remove_server_exception_route(self, server_ip: str) -> None:
        await self._revert("remove server exception route", [self.factory.delete_host_route(server_ip)])

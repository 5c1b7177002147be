"""Tunnel session state machine."""

import asyncio
import json
import os
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

from .exceptions import AlreadyActive, ConfigInvalid, EngineStartFailed, MalformedCredential
from .models import Credential, NetworkTopology, PortPair, SessionStatus, TunnelEndpoint
from .payload import build_engine_config, decode_endpoint
from .plumbing import NetworkPlumbing
from .ports import allocate_ports
from .prober import ConnectivityProber
from .reaper import ZombieReaper
from .settings import Settings
from .supervisor import ProcessSupervisor
from .topology import NetworkTopologyResolver
from .utils import best_effort
from ..logging_utility import logger


STEP_NAMES = (
    "gateway_adapter_resolved",
    "config_written",
    "server_ip_resolved",
    "proxy_engine_up",
    "config_deleted",
    "connectivity_verified",
    "adapter_bridge_up",
    "adapter_ip_assigned",
    "dns_assigned",
    "default_route_installed",
    "gateway_re_resolved",
    "exception_route_installed",
)


@dataclass
class ProvisioningStep:
    """One reversible provisioning action."""
    name: str
    forward: Callable[[], Awaitable[None]]
    reverse: Optional[Callable[[], Awaitable[None]]] = None


class ProvisioningLedger:
    """Ordered record of the provisioning steps that have succeeded."""

    def __init__(self):
        self._completed: List[str] = []

    def record(self, name: str) -> None:
        self._completed.append(name)

    def reset(self) -> None:
        self._completed = []

    def completed(self) -> List[str]:
        return list(self._completed)

    def flags(self) -> Dict[str, bool]:
        return {name: name in self._completed for name in STEP_NAMES}

    def __contains__(self, name: str) -> bool:
        return name in self._completed

    def __bool__(self) -> bool:
        return bool(self._completed)


class TunnelSession:
    """
    The host's single tunnel session.

    Only one instance may exist per process; obtain it through
    TunnelSession.instance().
    """

    _instance: Optional["TunnelSession"] = None

    def __new__(cls, *args, **kwargs):
        if cls._instance is not None:
            raise RuntimeError("A tunnel session already exists; use TunnelSession.instance()")
        cls._instance = super(TunnelSession, cls).__new__(cls)
        return cls._instance

    def __init__(
            self,
            settings: Optional[Settings] = None,
            resolver: Optional[NetworkTopologyResolver] = None,
            supervisor: Optional[ProcessSupervisor] = None,
            plumbing: Optional[NetworkPlumbing] = None,
            prober: Optional[ConnectivityProber] = None,
            reaper: Optional[ZombieReaper] = None,
    ):
        self.settings = settings or Settings()
        self.resolver = resolver or NetworkTopologyResolver()
        self.supervisor = supervisor or ProcessSupervisor(self.settings)
        self.plumbing = plumbing or NetworkPlumbing(self.settings)
        self.prober = prober or ConnectivityProber(self.settings)
        self.reaper = reaper or ZombieReaper(self.settings)
        self.supervisor.on_unexpected_exit = self._handle_engine_exit

        self.status = SessionStatus.DISCONNECTED
        self.ledger = ProvisioningLedger()
        self.ports: Optional[PortPair] = None
        self.topology: Optional[NetworkTopology] = None
        self.server_ip: Optional[str] = None
        self.exception_gateway_ip: Optional[str] = None
        self._steps: Dict[str, ProvisioningStep] = {}
        self._teardown_task: Optional[asyncio.Task] = None
        self._engine_failure: Optional[str] = None

        logger.info("TunnelSession initialized:")
        logger.info(f"  Binary dir: {self.settings.binary_dir}")
        logger.info(f"  Config dir: {self.settings.config_dir}")

    @classmethod
    def instance(cls, settings: Optional[Settings] = None) -> "TunnelSession":
        """Return the session, creating it on first use."""
        if cls._instance is None:
            cls(settings)
        return cls._instance

    @classmethod
    def release(cls) -> None:
        """Forget the current session so a new one can be created."""
        cls._instance = None

    def get_status(self) -> SessionStatus:
        return self.status

    # Config document

    def _write_config(self, config: dict) -> None:
        path = self.settings.config_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w") as f:
                json.dump(config, f, indent=2)
        except OSError as e:
            self._delete_config()
            raise ConfigInvalid(f"Could not write engine config {path}: {e}")

    def _delete_config(self) -> None:
        path = self.settings.config_path
        if os.path.exists(path):
            os.remove(path)

    # Provisioning steps

    def _plan(self, endpoint: TunnelEndpoint, config: dict) -> List[ProvisioningStep]:
        async def resolve_gateway_adapter():
            gateway_ip = await self.resolver.resolve_gateway()
            adapter = self.resolver.resolve_gateway_interface(gateway_ip)
            self.topology = NetworkTopology(gateway_ip=gateway_ip, gateway_adapter_name=adapter)

        async def write_config():
            self._write_config(config)

        async def delete_config():
            self._delete_config()

        async def resolve_server_ip():
            self.server_ip = await self.resolver.resolve_endpoint_ip(endpoint.address)
            logger.info(f"Resolved server IP: {self.server_ip}")

        async def start_proxy_engine():
            await self.supervisor.start_proxy_engine(self.settings.config_path)

        async def verify_connectivity():
            await self.prober.probe(self.ports.socks_port)

        async def start_adapter_bridge():
            await self.supervisor.start_adapter_bridge(self.ports.socks_port)

        async def assign_dns():
            await self.plumbing.assign_dns(self.topology.gateway_adapter_name)

        async def remove_dns():
            await self.plumbing.remove_dns(self.topology.gateway_adapter_name)

        async def confirm_gateway():
            # Rediscovery would now find the tunnel's own gateway
            self.exception_gateway_ip = self.topology.gateway_ip
            logger.info(f"Using original gateway {self.exception_gateway_ip} for the server route")

        async def install_exception_route():
            await self.plumbing.install_server_exception_route(self.server_ip, self.exception_gateway_ip)

        async def remove_exception_route():
            await self.plumbing.remove_server_exception_route(self.server_ip)

        return [
            ProvisioningStep("gateway_adapter_resolved", resolve_gateway_adapter),
            ProvisioningStep("config_written", write_config, delete_config),
            ProvisioningStep("server_ip_resolved", resolve_server_ip),
            ProvisioningStep("proxy_engine_up", start_proxy_engine, self.supervisor.stop_proxy_engine),
            ProvisioningStep("config_deleted", delete_config),
            ProvisioningStep("connectivity_verified", verify_connectivity),
            ProvisioningStep("adapter_bridge_up", start_adapter_bridge, self.supervisor.stop_adapter_bridge),
            ProvisioningStep("adapter_ip_assigned", self.plumbing.assign_static_address,
                             self.plumbing.remove_static_address),
            ProvisioningStep("dns_assigned", assign_dns, remove_dns),
            ProvisioningStep("default_route_installed", self.plumbing.install_default_route,
                             self.plumbing.remove_default_route),
            ProvisioningStep("gateway_re_resolved", confirm_gateway),
            ProvisioningStep("exception_route_installed", install_exception_route, remove_exception_route),
        ]

    # Lifecycle

    async def connect(self, credential: Credential) -> bool:
        """
        Bring the tunnel up.

        Any failure tears down whatever was provisioned and re-raises.

        Args:
            credential: Connection credential

        Returns:
            bool: True once connected
        """
        if self.status in (SessionStatus.CONNECTED, SessionStatus.CONNECTING):
            raise AlreadyActive("Already connected or connecting")

        self.status = SessionStatus.CONNECTING
        self.ledger.reset()
        self._steps = {}
        self._engine_failure = None

        try:
            if not credential.payload or not credential.session_id:
                raise MalformedCredential("Invalid credentials: missing payload or session id")

            await self.reaper.reap()

            self.ports = allocate_ports()
            logger.info(f"Allocated ports - Socks: {self.ports.socks_port}, HTTP: {self.ports.http_port}")

            logger.info("Decoding server descriptor...")
            endpoint = decode_endpoint(credential.payload)
            config = build_engine_config(endpoint, credential.session_id, self.ports,
                                         self.settings.engine_log_level)

            steps = self._plan(endpoint, config)
            self._steps = {step.name: step for step in steps}
            for step in steps:
                logger.info(f"Provisioning: {step.name}")
                await step.forward()
                self.ledger.record(step.name)
                self._check_engines()

        except Exception as e:
            logger.error(f"VPN connection failed: {e}")
            await self.disconnect()
            raise

        logger.info("VPN connection established!")
        self.status = SessionStatus.CONNECTED
        return True

    async def disconnect(self) -> bool:
        """Undo the recorded provisioning steps in reverse order."""
        self.status = SessionStatus.DISCONNECTING

        try:
            completed = self.ledger.completed()
            if completed:
                logger.info(f"Tearing down: {', '.join(reversed(completed))}")
            for name in reversed(completed):
                step = self._steps.get(name)
                if step is None or step.reverse is None:
                    continue
                await best_effort(f"Reverting {name}", step.reverse())
        finally:
            self.ledger.reset()
            self._steps = {}
            self.server_ip = None
            self.exception_gateway_ip = None
            self.topology = None
            self.ports = None
            self.status = SessionStatus.DISCONNECTED

        logger.info("VPN disconnected")
        return True

    def _check_engines(self) -> None:
        if self._engine_failure is not None:
            raise EngineStartFailed(self._engine_failure)

    def _handle_engine_exit(self, name: str, returncode: Optional[int]) -> None:
        if self.status == SessionStatus.CONNECTING:
            # Picked up by connect() after the step in progress
            self._engine_failure = f"{name} exited with code {returncode}"
            return
        if self.status != SessionStatus.CONNECTED:
            return
        logger.error(f"{name} died while connected (code {returncode}); disconnecting")
        self._teardown_task = asyncio.ensure_future(self.disconnect())

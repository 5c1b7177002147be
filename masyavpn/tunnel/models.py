"""Data models for tunnel session management."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class SessionStatus(Enum):
    """Tunnel session status"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


@dataclass(frozen=True)
class Credential:
    """Short-lived connection credential issued by the directory service"""
    protocol: str
    payload: str
    session_id: str
    private_key: Optional[str] = None
    server: Optional[Dict[str, Any]] = None

    def __repr__(self) -> str:
        return f"Credential(protocol={self.protocol!r}, payload=<{len(self.payload or '')} chars>)"


@dataclass(frozen=True)
class TunnelEndpoint:
    """Remote proxy server address"""
    address: str
    port: int

    def __str__(self) -> str:
        return f"{self.address}:{self.port}"


@dataclass(frozen=True)
class PortPair:
    """Local inbound listener ports"""
    socks_port: int
    http_port: int


@dataclass
class NetworkTopology:
    """Default gateway and the physical interface bound to it"""
    gateway_ip: str
    gateway_adapter_name: str


@dataclass(frozen=True)
class DnsProvider:
    """Named resolver pair for both address families"""
    name: str
    ipv4: Tuple[str, str]
    ipv6: Tuple[str, str]

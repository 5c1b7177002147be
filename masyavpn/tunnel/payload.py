"""Translation of credential payloads into proxy engine configuration."""

import base64
import binascii
from typing import Any, Dict

from .exceptions import MalformedCredential
from .models import PortPair, TunnelEndpoint

PAYLOAD_LENGTH = 7
USER_LEVEL = 8


def decode_endpoint(payload: str) -> TunnelEndpoint:
    """
    Decode a base64 server descriptor.

    The descriptor is 4 address octets, a big-endian port and one
    reserved byte.

    Args:
        payload: base64 string from the credential

    Returns:
        TunnelEndpoint object
    """
    try:
        raw = base64.b64decode(payload or "", validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedCredential(f"Payload is not valid base64: {e}")

    if len(raw) != PAYLOAD_LENGTH:
        raise MalformedCredential(
            f"Invalid payload length: expected {PAYLOAD_LENGTH} bytes, got {len(raw)}"
        )

    address = ".".join(str(octet) for octet in raw[0:4])
    port = int.from_bytes(raw[4:6], "big")
    return TunnelEndpoint(address=address, port=port)


def build_engine_config(endpoint: TunnelEndpoint, session_id: str, ports: PortPair,
                        log_level: str = "warning") -> Dict[str, Any]:
    """Build the proxy engine configuration document."""
    return {
        "dns": {
            "hosts": {"domain:googleapis.cn": "googleapis.com"},
            "servers": ["1.1.1.1", "1.0.0.1", "8.8.8.8"],
        },
        "inbounds": [
            {
                "listen": "127.0.0.1",
                "port": ports.socks_port,
                "protocol": "socks",
                "settings": {"auth": "noauth", "udp": True, "userLevel": USER_LEVEL},
                "sniffing": {
                    "destOverride": ["http", "tls", "quic"],
                    "metadataOnly": False,
                    "routeOnly": False,
                    "enabled": True,
                },
                "tag": "socks",
            },
            {
                "listen": "127.0.0.1",
                "port": ports.http_port,
                "protocol": "http",
                "settings": {"userLevel": USER_LEVEL, "allowTransparent": False},
                "tag": "http",
            },
        ],
        "log": {"loglevel": log_level},
        "outbounds": [
            {
                "mux": {
                    "concurrency": 8,
                    "enabled": True,
                    "xudpConcurrency": 16,
                    "xudpProxyUDP443": "reject",
                },
                "protocol": "vmess",
                "settings": {
                    "vnext": [{
                        "address": endpoint.address,
                        "port": endpoint.port,
                        "users": [{
                            "alterId": 0,
                            "encryption": "",
                            "flow": "",
                            "id": session_id,
                            "level": USER_LEVEL,
                            "security": "auto",
                        }],
                    }],
                },
                "streamSettings": {
                    "network": "grpc",
                    "grpcSettings": {"serviceName": "", "multiMode": False},
                    "sockopt": {"mark": 0, "tcpFastOpen": False, "tproxy": "off"},
                },
                "tag": "proxy",
            },
            {
                "protocol": "freedom",
                "settings": {"domainStrategy": "UseIPv4"},
                "tag": "direct",
            },
            {
                "protocol": "blackhole",
                "settings": {"response": {"type": "http"}},
                "tag": "block",
            },
        ],
        "routing": {
            "domainStrategy": "AsIs",
            "rules": [
                {"type": "field", "domain": ["geosite:private"], "outboundTag": "direct"},
                {"type": "field", "ip": ["geoip:private"], "outboundTag": "direct"},
                {"type": "field", "inboundTag": ["socks", "http"], "outboundTag": "proxy"},
            ],
        },
        "policy": {
            "levels": {
                str(USER_LEVEL): {"connIdle": 300, "downlinkOnly": 1, "handshake": 4, "uplinkOnly": 1},
            },
            "system": {"statsOutboundUplink": True, "statsOutboundDownlink": True},
        },
    }

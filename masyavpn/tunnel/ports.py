"""Ephemeral local port allocation for the engine's inbound listeners."""

import socket
from contextlib import ExitStack

from .models import PortPair


def allocate_ports(host: str = "127.0.0.1") -> PortPair:
    """
    Ask the OS for two distinct free TCP ports.

    Both sockets stay bound until both ports are known, so the pair
    cannot collide with itself.
    """
    with ExitStack() as stack:
        ports = []
        for _ in range(2):
            sock = stack.enter_context(socket.socket(socket.AF_INET, socket.SOCK_STREAM))
            sock.bind((host, 0))
            ports.append(sock.getsockname()[1])
    return PortPair(socks_port=ports[0], http_port=ports[1])

from masyavpn.tunnel.ports import allocate_ports


def test_allocates_two_distinct_ephemeral_ports():
    ports = allocate_ports()
    assert ports.socks_port != ports.http_port
    assert 0 < ports.socks_port < 65536
    assert 0 < ports.http_port < 65536


def test_allocated_ports_are_bindable():
    import socket

    ports = allocate_ports()
    for port in (ports.socks_port, ports.http_port):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", port))

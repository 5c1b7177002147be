import asyncio
from types import SimpleNamespace

import pytest
import requests

from masyavpn.tunnel.prober import ConnectivityProber
from masyavpn.tunnel.settings import Settings


@pytest.fixture
def prober():
    return ConnectivityProber(Settings(probe_backoff=0))


def install_get(monkeypatch, outcomes):
    calls = []

    def get(url, **kwargs):
        calls.append((url, kwargs))
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(status_code=outcome, close=lambda: None)

    monkeypatch.setattr(requests, "get", get)
    return calls


def test_any_response_counts_as_success(monkeypatch, prober):
    calls = install_get(monkeypatch, [503])
    assert asyncio.run(prober.probe(10808)) is True
    assert len(calls) == 1


def test_probe_goes_through_local_socks_listener(monkeypatch, prober):
    calls = install_get(monkeypatch, [204])
    asyncio.run(prober.probe(10808))
    url, kwargs = calls[0]
    assert url == "http://cp.cloudflare.com:80/"
    assert kwargs["proxies"]["http"] == "socks5h://127.0.0.1:10808"
    assert kwargs["timeout"] == 2.0


def test_retries_until_a_response(monkeypatch, prober):
    calls = install_get(monkeypatch, [requests.ConnectionError("refused"), requests.Timeout("slow"), 200])
    assert asyncio.run(prober.probe(10808)) is True
    assert len(calls) == 3


def test_three_failures_still_succeed(monkeypatch, prober):
    calls = install_get(monkeypatch, [requests.ConnectionError("refused")] * 3)
    assert asyncio.run(prober.probe(10808)) is True
    assert len(calls) == 3


def test_backoff_between_attempts_only(monkeypatch):
    install_get(monkeypatch, [requests.ConnectionError("refused")] * 3)
    sleeps = []

    async def sleep(delay):
        sleeps.append(delay)

    monkeypatch.setattr(asyncio, "sleep", sleep)
    asyncio.run(ConnectivityProber(Settings()).probe(10808))
    assert sleeps == [1.0, 1.0]


async def trickling_socks_server(reader, writer):
    """SOCKS5 proxy that accepts the request, then sends its reply one byte at a time."""
    _, nmethods = await reader.readexactly(2)
    await reader.readexactly(nmethods)
    writer.write(b"\x05\x00")
    header = await reader.readexactly(4)
    if header[3] == 3:
        length = (await reader.readexactly(1))[0]
        await reader.readexactly(length + 2)
    else:
        await reader.readexactly(6)
    writer.write(b"\x05\x00\x00\x01" + bytes(6))
    await reader.readuntil(b"\r\n\r\n")
    try:
        for byte in b"HTTP/1.1 204 No Content\r\nContent-Length: 0\r\n\r\n":
            writer.write(bytes([byte]))
            await writer.drain()
            await asyncio.sleep(0.3)
    finally:
        writer.close()


def test_slow_reply_is_cut_off_at_the_attempt_timeout():
    settings = Settings(probe_host="probe.test", probe_attempts=1, probe_timeout=1.0)

    async def main():
        server = await asyncio.start_server(trickling_socks_server, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        loop = asyncio.get_running_loop()
        try:
            started = loop.time()
            result = await ConnectivityProber(settings).probe(port)
            return result, loop.time() - started
        finally:
            server.close()

    result, elapsed = asyncio.run(main())
    assert result is True
    assert elapsed < 3

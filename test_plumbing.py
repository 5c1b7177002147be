import asyncio

import pytest

from masyavpn.tunnel import plumbing
from masyavpn.tunnel.command_factory import WindowsCommandFactory
from masyavpn.tunnel.commands import CommandError
from masyavpn.tunnel.exceptions import PlumbingFailed
from masyavpn.tunnel.plumbing import NetworkPlumbing
from masyavpn.tunnel.settings import Settings


class Calls(list):
    """Recorded commands plus the tokens that make a command fail."""

    def __init__(self):
        super().__init__()
        self.fail = set()


@pytest.fixture
def commands(monkeypatch):
    calls = Calls()

    async def run_command(cmd, check=True, timeout=None):
        calls.append(cmd)
        if any(token in cmd for token in calls.fail):
            raise CommandError(f"Command failed (1): {' '.join(cmd)}", returncode=1, output="Element not found.")
        return "", ""

    monkeypatch.setattr(plumbing, "run_command", run_command)
    return calls


@pytest.fixture
def controller():
    return NetworkPlumbing(Settings(), WindowsCommandFactory)


def test_static_address(commands, controller):
    asyncio.run(controller.assign_static_address())
    assert [cmd[:5] for cmd in commands] == [
        ["netsh", "interface", "ipv4", "set", "address"],
        ["netsh", "interface", "ipv6", "set", "address"],
    ]


def test_dns_covers_both_interfaces_then_flushes(commands, controller):
    asyncio.run(controller.assign_dns("Wi-Fi"))
    assert any("name=Wi-Fi" in cmd for cmd in commands)
    assert commands[-1] == ["ipconfig", "/flushdns"]


def test_exception_route_goes_via_original_gateway(commands, controller):
    asyncio.run(controller.install_server_exception_route("203.0.113.7", "192.168.1.1"))
    assert commands == [["route", "add", "203.0.113.7", "mask", "255.255.255.255", "192.168.1.1"]]


def test_forward_failure_names_the_step(commands, controller):
    commands.fail.add("dnsservers")
    with pytest.raises(PlumbingFailed) as excinfo:
        asyncio.run(controller.assign_dns("Wi-Fi"))
    assert excinfo.value.step == "assign DNS"
    assert excinfo.value.os_error == "Element not found."
    # stops at the first failing command, no flush
    assert len(commands) == 1


def test_default_route_failure(commands, controller):
    commands.fail.add("0.0.0.0/0")
    with pytest.raises(PlumbingFailed) as excinfo:
        asyncio.run(controller.install_default_route())
    assert excinfo.value.step == "install default route"


def test_reverse_operations_never_raise_and_try_every_command(commands, controller):
    commands.fail.update({"netsh", "ipconfig", "route"})

    asyncio.run(controller.remove_server_exception_route("203.0.113.7"))
    asyncio.run(controller.remove_default_route())
    asyncio.run(controller.remove_dns("Wi-Fi"))
    asyncio.run(controller.remove_static_address())

    assert commands[0] == ["route", "delete", "203.0.113.7"]
    # 1 host route + 2 default routes + 3 dns + 1 flush + 2 addresses
    assert len(commands) == 9

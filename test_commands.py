from pathlib import Path

import pytest

from masyavpn.tunnel import command_factory
from masyavpn.tunnel.command_factory import (
    CommandFactory,
    LinuxCommandFactory,
    WindowsCommandFactory,
    get_command_factory,
)
from masyavpn.tunnel.commands import Command, ValidationError, ENGINE_OPTIONS
from masyavpn.tunnel.models import DnsProvider

CLOUDFLARE = DnsProvider("cloudflare", ("1.1.1.1", "1.0.0.1"), ("2606:4700:4700::1111", "2606:4700:4700::1001"))


def test_builder_is_immutable():
    base = Command.from_str("route")
    extended = base.with_args("print", "0.0.0.0")
    assert base.build() == ["route"]
    assert extended.build() == ["route", "print", "0.0.0.0"]


def test_sudo_prefix():
    assert Command.from_str("ip addr").as_sudo().build() == ["sudo", "ip", "addr"]


def test_params_render_as_key_value():
    cmd = Command.from_str("netsh interface ipv4").with_params(name="masyavpn", source="dhcp")
    assert cmd.build() == ["netsh", "interface", "ipv4", "name=masyavpn", "source=dhcp"]


def test_option_validation():
    engine = Command.from_binary(Path("xray"), ENGINE_OPTIONS)
    assert engine.with_option("config", "a.json").build() == ["xray", "-config", "a.json"]
    with pytest.raises(ValidationError):
        engine.with_option("format", "json")


def test_binary_path_with_spaces_stays_one_argument():
    cmd = Command.from_binary(Path("C:/Program Files/MasyaVPN/xray.exe"), ENGINE_OPTIONS)
    assert cmd.build()[0] == str(Path("C:/Program Files/MasyaVPN/xray.exe"))


def test_engine_commands():
    config = Path("cfg.json")
    assert WindowsCommandFactory.validate_engine_config(Path("xray"), config) == [
        "xray", "-test", "-config", "cfg.json"]
    assert WindowsCommandFactory.start_engine(Path("xray"), config) == ["xray", "-config", "cfg.json"]
    assert WindowsCommandFactory.start_bridge(Path("tun2socks"), "masyavpn", 10808) == [
        "tun2socks", "-tcp-auto-tuning",
        "-device", "tun://masyavpn",
        "-proxy", "socks5://127.0.0.1:10808",
    ]


def test_windows_static_address():
    commands = WindowsCommandFactory.assign_static_address(
        "masyavpn", "192.168.123.1", "255.255.255.0", "fd12:3456:789a:1::1", 64)
    assert commands[0] == [
        "netsh", "interface", "ipv4", "set", "address",
        "name=masyavpn", "source=static", "addr=192.168.123.1", "mask=255.255.255.0",
    ]
    assert commands[1] == [
        "netsh", "interface", "ipv6", "set", "address",
        "interface=masyavpn", "address=fd12:3456:789a:1::1/64", "store=persistent",
    ]


def test_windows_dns_mirrors_ipv4_onto_original_interface():
    commands = WindowsCommandFactory.assign_dns("masyavpn", CLOUDFLARE, "Wi-Fi")
    assert commands[0] == [
        "netsh", "interface", "ipv4", "set", "dnsservers", "name=masyavpn", "static",
        "address=1.1.1.1", "register=none", "validate=no",
    ]
    assert commands[1] == [
        "netsh", "interface", "ipv4", "add", "dnsservers", "name=masyavpn",
        "address=1.0.0.1", "index=2", "validate=no",
    ]
    assert "address=2606:4700:4700::1111" in commands[2]
    assert "name=Wi-Fi" in commands[4] and "address=1.1.1.1" in commands[4]
    assert len(commands) == 6
    assert len(WindowsCommandFactory.assign_dns("masyavpn", CLOUDFLARE, None)) == 4


def test_windows_routes():
    assert WindowsCommandFactory.add_default_routes("masyavpn", "192.168.123.1", "fd12::1")[0] == [
        "netsh", "interface", "ipv4", "add", "route", "0.0.0.0/0", "masyavpn", "192.168.123.1", "metric=1"]
    assert WindowsCommandFactory.add_host_route("203.0.113.7", "192.168.1.1") == [
        "route", "add", "203.0.113.7", "mask", "255.255.255.255", "192.168.1.1"]
    assert WindowsCommandFactory.delete_host_route("203.0.113.7") == ["route", "delete", "203.0.113.7"]
    assert WindowsCommandFactory.kill_by_name("xray.exe") == ["taskkill", "/F", "/IM", "xray.exe"]


def test_linux_commands_use_sudo_only_when_not_root(monkeypatch):
    monkeypatch.setattr(command_factory.os, "geteuid", lambda: 0, raising=False)
    assert LinuxCommandFactory.add_host_route("203.0.113.7", "192.168.1.1") == [
        "ip", "route", "add", "203.0.113.7/32", "via", "192.168.1.1"]

    monkeypatch.setattr(command_factory.os, "geteuid", lambda: 1000, raising=False)
    assert LinuxCommandFactory.kill_by_name("xray") == ["sudo", "pkill", "-9", "-x", "xray"]


def test_linux_static_address_uses_prefix_length(monkeypatch):
    monkeypatch.setattr(command_factory.os, "geteuid", lambda: 0, raising=False)
    commands = LinuxCommandFactory.assign_static_address(
        "masyavpn", "192.168.123.1", "255.255.255.0", "fd12:3456:789a:1::1", 64)
    assert commands[0] == ["ip", "addr", "replace", "192.168.123.1/24", "dev", "masyavpn"]
    assert commands[1] == ["ip", "-6", "addr", "replace", "fd12:3456:789a:1::1/64", "dev", "masyavpn"]


def test_not_found_detection():
    assert WindowsCommandFactory.process_not_found(128, "")
    assert WindowsCommandFactory.process_not_found(1, 'ERROR: The process "xray.exe" not found.')
    assert not WindowsCommandFactory.process_not_found(1, "Access is denied.")
    assert LinuxCommandFactory.process_not_found(1, "")
    assert not LinuxCommandFactory.process_not_found(2, "")


def test_factory_selection():
    assert get_command_factory("win32") is WindowsCommandFactory
    assert get_command_factory("linux") is LinuxCommandFactory


def test_platform_factories_implement_every_operation():
    with pytest.raises(TypeError):
        CommandFactory()

    class Partial(CommandFactory):
        @staticmethod
        def kill_by_name(image):
            return ["kill", image]

    with pytest.raises(TypeError):
        Partial()

    assert not LinuxCommandFactory.__abstractmethods__
    assert not WindowsCommandFactory.__abstractmethods__
    assert isinstance(get_command_factory("linux")(), CommandFactory)

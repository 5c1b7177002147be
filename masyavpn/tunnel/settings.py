"""Settings for the tunnel session, loaded from an INI file."""

import configparser
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .models import DnsProvider
from ..paths import app_data_dir


DEFAULT_CONFIG_FILE = "config/masyavpn.conf"

DEFAULT_DNS_PROVIDERS = [
    DnsProvider(
        name="cloudflare",
        ipv4=("1.1.1.1", "1.0.0.1"),
        ipv6=("2606:4700:4700::1111", "2606:4700:4700::1001"),
    ),
    DnsProvider(
        name="google",
        ipv4=("8.8.8.8", "8.8.4.4"),
        ipv6=("2001:4860:4860::8888", "2001:4860:4860::8844"),
    ),
]


def _default_binary_dir() -> Path:
    return Path(__file__).parent.parent.parent / "resources" / "bin"


@dataclass
class Settings:
    """Static configuration of the tunnel session."""
    binary_dir: Path = field(default_factory=_default_binary_dir)
    data_dir: Path = field(default_factory=app_data_dir)

    adapter_name: str = "masyavpn"
    adapter_ipv4: str = "192.168.123.1"
    adapter_ipv4_mask: str = "255.255.255.0"
    adapter_ipv6: str = "fd12:3456:789a:1::1"
    adapter_ipv6_prefix: int = 64

    engine_startup_timeout: float = 30.0
    engine_ready_marker: str = "started"
    engine_log_level: str = "warning"

    probe_host: str = "cp.cloudflare.com"
    probe_port: int = 80
    probe_attempts: int = 3
    probe_timeout: float = 2.0
    probe_backoff: float = 1.0

    dns_providers: List[DnsProvider] = field(default_factory=lambda: list(DEFAULT_DNS_PROVIDERS))

    @property
    def config_dir(self) -> Path:
        return self.data_dir / "vpn-config"

    @property
    def config_path(self) -> Path:
        return self.config_dir / "v2ray_config.json"

    @property
    def active_dns(self) -> DnsProvider:
        """First provider of the preference list."""
        return self.dns_providers[0]

    @property
    def executable_suffix(self) -> str:
        return ".exe" if sys.platform == "win32" else ""

    @property
    def engine_binary(self) -> Path:
        return self.binary_dir / f"xray{self.executable_suffix}"

    @property
    def bridge_binary(self) -> Path:
        return self.binary_dir / f"tun2socks{self.executable_suffix}"


def _pair(value: str, option: str) -> tuple:
    parts = [part.strip() for part in value.split(",") if part.strip()]
    if len(parts) != 2:
        raise ValueError(f"{option} must list exactly two addresses, got {value!r}")
    return parts[0], parts[1]


def _load_dns_providers(config: configparser.ConfigParser) -> Optional[List[DnsProvider]]:
    if not config.has_option("dns", "providers"):
        return None

    providers = []
    for name in config["dns"]["providers"].split(","):
        name = name.strip()
        if not name:
            continue
        section = config[f"dns.{name}"]
        providers.append(DnsProvider(
            name=name,
            ipv4=_pair(section["ipv4"], f"dns.{name}.ipv4"),
            ipv6=_pair(section["ipv6"], f"dns.{name}.ipv6"),
        ))
    return providers or None


def load_settings(config_file: Optional[str] = None) -> Settings:
    """
    Build settings from an INI file, falling back to defaults.

    Args:
        config_file: Path to the INI file; defaults to $MASYAVPN_CONFIG
            or config/masyavpn.conf

    Returns:
        Settings object
    """
    config_file = config_file or os.environ.get("MASYAVPN_CONFIG", DEFAULT_CONFIG_FILE)
    config = configparser.ConfigParser()
    config.read(config_file)

    settings = Settings()

    if config.has_section("paths"):
        paths = config["paths"]
        if paths.get("binary_dir"):
            settings.binary_dir = Path(paths["binary_dir"])
        if paths.get("data_dir"):
            settings.data_dir = Path(paths["data_dir"])

    if config.has_section("adapter"):
        adapter = config["adapter"]
        settings.adapter_name = adapter.get("name", settings.adapter_name)
        settings.adapter_ipv4 = adapter.get("ipv4", settings.adapter_ipv4)
        settings.adapter_ipv4_mask = adapter.get("ipv4_mask", settings.adapter_ipv4_mask)
        settings.adapter_ipv6 = adapter.get("ipv6", settings.adapter_ipv6)
        settings.adapter_ipv6_prefix = adapter.getint("ipv6_prefix", settings.adapter_ipv6_prefix)

    if config.has_section("engine"):
        engine = config["engine"]
        settings.engine_startup_timeout = engine.getfloat("startup_timeout", settings.engine_startup_timeout)
        settings.engine_ready_marker = engine.get("ready_marker", settings.engine_ready_marker)
        settings.engine_log_level = engine.get("log_level", settings.engine_log_level)

    if config.has_section("probe"):
        probe = config["probe"]
        settings.probe_host = probe.get("host", settings.probe_host)
        settings.probe_port = probe.getint("port", settings.probe_port)
        settings.probe_attempts = probe.getint("attempts", settings.probe_attempts)
        settings.probe_timeout = probe.getfloat("timeout", settings.probe_timeout)
        settings.probe_backoff = probe.getfloat("backoff", settings.probe_backoff)

    providers = _load_dns_providers(config)
    if providers:
        settings.dns_providers = providers

    return settings

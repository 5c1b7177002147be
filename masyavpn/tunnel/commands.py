"""Command templates and builders for host network management."""

from typing import List, Optional, Dict
from dataclasses import dataclass
from pathlib import Path


class CommandError(Exception):
    """Raised when an OS command cannot be run or exits non-zero."""

    def __init__(self, message: str, returncode: Optional[int] = None, output: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.output = output


class ValidationError(CommandError):
    """Raised when command validation fails."""
    pass


@dataclass
class Command:
    """Command builder with validation."""
    base_cmd: List[str]
    use_sudo: bool = False
    _valid_options: Optional[Dict[str, type]] = None
    option_prefix: str = "--"

    def _derive(self, base_cmd: List[str], use_sudo: Optional[bool] = None) -> 'Command':
        return Command(
            base_cmd,
            self.use_sudo if use_sudo is None else use_sudo,
            self._valid_options,
            self.option_prefix,
        )

    def _validate_option(self, opt: str, value: Optional[str]) -> None:
        """Validate option and its value if validation rules exist."""
        if self._valid_options is not None:
            # Remove leading dashes for validation
            opt_name = opt.lstrip('-').replace('-', '_')

            if opt_name not in self._valid_options:
                valid_opts = ", ".join(f"{self.option_prefix}{opt.replace('_', '-')}"
                                       for opt in self._valid_options.keys())
                raise ValidationError(
                    f"Invalid option '{opt}' for command {self.base_cmd[0]}. "
                    f"Valid options are: {valid_opts}"
                )

            if value is not None:
                expected_type = self._valid_options[opt_name]
                try:
                    if expected_type == Path:
                        Path(value)
                    else:
                        expected_type(value)
                except ValueError:
                    raise ValidationError(
                        f"Invalid value '{value}' for option '{opt}'. Expected {expected_type.__name__}"
                    )

    def _validate_executable(self) -> None:
        """Validate that base command exists."""
        if not self.base_cmd:
            raise ValidationError("Command cannot be empty")

    @classmethod
    def from_str(cls, cmd: str, use_sudo: bool = False, valid_options: Optional[Dict[str, type]] = None,
                 option_prefix: str = "--") -> 'Command':
        """Create command from string with optional validation rules."""
        command = cls(cmd.split(), use_sudo, valid_options, option_prefix)
        command._validate_executable()
        return command

    @classmethod
    def from_binary(cls, binary: Path, valid_options: Optional[Dict[str, type]] = None,
                    option_prefix: str = "-") -> 'Command':
        """Create command for an executable path, which may contain spaces."""
        command = cls([str(binary)], False, valid_options, option_prefix)
        command._validate_executable()
        return command

    def with_arg(self, arg: str) -> 'Command':
        """Add single argument."""
        return self._derive(self.base_cmd + [str(arg)])

    def with_args(self, *args: str) -> 'Command':
        """Add multiple arguments."""
        return self._derive(self.base_cmd + [str(arg) for arg in args])

    def with_option(self, opt: str, value: Optional[str] = None) -> 'Command':
        """Add option with validation."""
        opt_clean = opt.lstrip('-')
        self._validate_option(opt_clean, value)
        cmd = self.base_cmd.copy()
        cmd.append(f"{self.option_prefix}{opt_clean}")
        if value is not None:
            cmd.append(str(value))
        return self._derive(cmd)

    def with_options(self, **kwargs: Optional[str]) -> 'Command':
        """Add multiple options with validation."""
        cmd = self.base_cmd.copy()
        for opt, value in kwargs.items():
            opt_str = self.option_prefix + opt.replace("_", "-")
            self._validate_option(opt, str(value) if value is not None else None)
            cmd.append(opt_str)
            if value is not None:
                cmd.append(str(value))
        return self._derive(cmd)

    def with_params(self, **kwargs: object) -> 'Command':
        """Add key=value parameters (netsh style)."""
        return self._derive(self.base_cmd + [f"{key}={value}" for key, value in kwargs.items()])

    def as_sudo(self) -> 'Command':
        """Mark command to be executed with sudo."""
        return self._derive(self.base_cmd, use_sudo=True)

    def build(self) -> List[str]:
        """Get final command list."""
        self._validate_executable()
        return ["sudo"] + self.base_cmd if self.use_sudo else list(self.base_cmd)


ENGINE_OPTIONS = {
    'test': type(None),
    'config': Path,
}

BRIDGE_OPTIONS = {
    'tcp_auto_tuning': type(None),
    'device': str,
    'proxy': str,
    'loglevel': str,
}

# Windows

NETSH = Command.from_str("netsh interface")
NETSH_IPV4 = NETSH.with_arg("ipv4")
NETSH_IPV6 = NETSH.with_arg("ipv6")

ROUTE = Command.from_str("route")
ROUTE_PRINT = ROUTE.with_args("print", "0.0.0.0")

IPCONFIG_FLUSH = Command.from_str("ipconfig /flushdns")

TASKKILL = Command.from_str("taskkill /F /IM")

POWERSHELL = Command.from_str("powershell -NoProfile -NonInteractive -Command")
GET_DEFAULT_ROUTE = POWERSHELL.with_arg(
    "Get-NetRoute -DestinationPrefix 0.0.0.0/0 | Sort-Object RouteMetric"
    " | Select-Object -First 1 -ExpandProperty NextHop"
)

# Linux

IP = Command.from_str("ip")
IP4 = IP.with_arg("-4")
IP6 = IP.with_arg("-6")
IP_ADDR = IP.with_arg("addr")
IP6_ADDR = IP6.with_arg("addr")
IP_ROUTE = IP.with_arg("route")
IP4_ROUTE = IP4.with_arg("route")
IP6_ROUTE = IP6.with_arg("route")

ROUTE_NUMERIC = ROUTE.with_arg("-n")

RESOLVECTL = Command.from_str("resolvectl")

PKILL = Command.from_str("pkill -9 -x")

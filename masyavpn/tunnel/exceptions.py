"""Custom exceptions for tunnel session management."""

from typing import Optional


class TunnelError(Exception):
    """Base exception for tunnel-related errors."""
    pass


class MalformedCredential(TunnelError):
    """Raised when a credential payload cannot be decoded"""
    pass


class GatewayNotFound(TunnelError):
    """Raised when no default IPv4 gateway can be discovered"""
    pass


class InterfaceNotFound(TunnelError):
    """Raised when no local interface sits on the gateway's subnet"""
    pass


class EndpointResolutionFailed(TunnelError):
    """Raised when the tunnel endpoint has no usable IPv4 address"""
    pass


class EngineError(TunnelError):
    """Base for failures reported by an external engine process."""

    def __init__(self, message: str, output: str = ""):
        super().__init__(message)
        self.output = output

    def __str__(self) -> str:
        message = super().__str__()
        if self.output:
            return f"{message}\n{self.output}"
        return message


class ConfigInvalid(EngineError):
    """Raised when the proxy engine rejects its configuration"""
    pass


class EngineStartFailed(EngineError):
    """Raised when an engine fails to launch or to report readiness"""
    pass


class PlumbingFailed(TunnelError):
    """Raised when a host network mutation fails"""

    def __init__(self, step: str, os_error: Optional[str] = None):
        super().__init__(f"{step} failed: {os_error}" if os_error else f"{step} failed")
        self.step = step
        self.os_error = os_error


class AlreadyActive(TunnelError):
    """Raised when connect is called while a session is up or coming up"""
    pass

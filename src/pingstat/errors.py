"""Exceptions raised by pingstat."""


class PingstatError(Exception):
    """Base exception for pingstat errors."""
    pass


class ResolutionError(PingstatError):
    """Raised when the target host cannot be resolved."""
    pass


class UnsupportedAddressError(ResolutionError):
    """Raised when the target only resolves to an unsupported address family."""
    pass


class TransportError(PingstatError):
    """Raised when the probe transport cannot be initialized."""
    pass


class ProbeError(PingstatError):
    """Raised when a single probe fails. Counted as a lost packet."""
    pass


class ProbeTimeout(ProbeError):
    """Raised when no reply arrives within the per-probe timeout."""
    pass


class RecorderError(PingstatError):
    """Raised when a snapshot cannot be persisted or a destination cannot be read."""
    pass

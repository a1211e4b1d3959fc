"""
Error types raised by the exporter.

TransportError, UpstreamError and ParseError only ever abort a single poll
cycle. ConfigError is fatal and stops the exporter from starting.
"""

from typing import Optional


class ExporterError(Exception):
    """Base class for all exporter errors."""


class TransportError(ExporterError):
    """No response was obtained from the gateway (refused, timeout, DNS...)."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class UpstreamError(ExporterError):
    """The gateway answered, but with a status that signals failure."""

    MAX_BODY_IN_MESSAGE = 200

    def __init__(self, status: int, body: bytes = b"", operation: str = ""):
        self.status = status
        self.body = body or b""
        self.operation = operation
        snippet = self.body[:self.MAX_BODY_IN_MESSAGE].decode("utf-8", errors="replace")
        prefix = f"{operation}: " if operation else ""
        super().__init__(f"{prefix}HTTP {status}: {snippet}")


class ParseError(ExporterError):
    """Response body is not JSON, or not the JSON shape we expect."""

    def __init__(self, message: str, operation: str = ""):
        self.operation = operation
        prefix = f"{operation}: " if operation else ""
        super().__init__(f"{prefix}{message}")


class ConfigError(ExporterError):
    """Missing or invalid configuration (credentials, endpoint, listen address)."""

"""
Exceptions raised by the Electrum WebSocket client.
"""

from typing import Optional


class ElectrumWSError(Exception):
    """Base class for every error raised by the client."""


class TransportError(ElectrumWSError):
    """The underlying WebSocket failed or is not usable."""


class RequestTimeoutError(ElectrumWSError, TimeoutError):
    """No response arrived within the per-request deadline."""

    def __init__(self, request_id: int, method: str):
        super().__init__(f"ElectrumWS request timeout. request ID: {request_id} ({method})")
        self.request_id = request_id
        self.method = method


class UnclassifiedRPCError(ElectrumWSError):
    """
    Server returned an error without an extractable error code.

    The exception message is the raw error text, verbatim.
    """

    def __init__(self, raw: str, code: Optional[int] = None):
        super().__init__(raw)
        self.raw = raw
        self.code = code


class SessionClosedError(ElectrumWSError):
    """The session was closed while the request was outstanding."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

"""
Type definitions for the Electrum WebSocket client.

Holds the lifecycle enums, the request/response envelopes exchanged with
the server and the interface a transport has to implement.
"""

import json
from dataclasses import dataclass, field
from typing import Optional, Callable, Any, Protocol, Union
from enum import Enum
import asyncio

from pydantic import BaseModel, ConfigDict, StrictFloat, StrictInt, StrictStr, ValidationError


class ElectrumWSEvent(str, Enum):
    """Lifecycle events published by the client."""
    OPEN = "open"
    CLOSE = "close"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    ERROR = "error"
    MESSAGE = "message"


class ConnectionState(str, Enum):
    """State of the underlying transport."""
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class SessionState(str, Enum):
    """State of the client session."""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CLOSED = "closed"


# Close codes (WebSocket standard)
class CloseCode:
    NORMAL = 1000
    GOING_AWAY = 1001
    PROTOCOL_ERROR = 1002
    ABNORMAL = 1006
    INTERNAL_ERROR = 1011


JSONRPC_VERSION = "2.0"


@dataclass
class RpcRequest:
    """
    Outgoing JSON-RPC 2.0 request.

    Electrum servers expect one JSON document per line, so every request is
    framed with a trailing newline.
    """
    method: str
    id: int
    params: list = field(default_factory=list)
    jsonrpc: str = JSONRPC_VERSION

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "jsonrpc": self.jsonrpc,
            "method": self.method,
            "params": self.params,
            "id": self.id,
        }

    def to_frame(self) -> bytes:
        """Encode as a newline terminated UTF-8 frame."""
        return (json.dumps(self.to_dict(), separators=(",", ":")) + "\n").encode("utf-8")


class RpcResponse(BaseModel):
    """Response to one of our requests: carries ``jsonrpc`` and a numeric ``id``."""
    model_config = ConfigDict(extra="allow")

    jsonrpc: StrictStr
    id: Union[StrictInt, StrictFloat]
    result: Any = None
    error: Any = None

    @property
    def has_result(self) -> bool:
        return "result" in self.model_fields_set

    @property
    def error_text(self) -> str:
        """Text of the error payload (the string itself or the object's message)."""
        if isinstance(self.error, str):
            return self.error
        if isinstance(self.error, dict):
            return str(self.error.get("message", ""))
        return str(self.error)

    @property
    def error_code(self) -> Optional[int]:
        if isinstance(self.error, dict) and isinstance(self.error.get("code"), int):
            return self.error["code"]
        return None

    def as_push(self) -> Optional["RpcNotification"]:
        """The push carried by a response that also names a ``method``, if any."""
        extra = self.model_extra or {}
        if not isinstance(extra.get("method"), str):
            return None
        return RpcNotification(jsonrpc=self.jsonrpc, method=extra["method"], params=extra.get("params"))


class RpcNotification(BaseModel):
    """Server initiated message: carries ``jsonrpc`` and a string ``method``."""
    model_config = ConfigDict(extra="allow")

    jsonrpc: StrictStr
    method: StrictStr
    params: Any = None

    @property
    def param_list(self) -> list:
        if self.params is None:
            return []
        if isinstance(self.params, list):
            return self.params
        return [self.params]


RpcMessage = Union[RpcResponse, RpcNotification]


def parse_rpc_message(data: Any) -> Optional[RpcMessage]:
    """
    Recognize a decoded JSON value as a response or a push message.

    Args:
        data: Value produced by ``json.loads``

    Returns:
        RpcResponse or RpcNotification, None if the value is neither
    """
    if not isinstance(data, dict):
        return None
    for model in (RpcResponse, RpcNotification):
        try:
            return model.model_validate(data)
        except ValidationError:
            continue
    return None


@dataclass
class PendingRequest:
    """One in-flight call awaiting its response."""
    id: int
    method: str
    future: asyncio.Future
    timeout: asyncio.TimerHandle

    def cancel_timeout(self) -> None:
        self.timeout.cancel()


@dataclass
class TransportClose:
    """Close notification delivered by a transport."""
    code: int = CloseCode.ABNORMAL
    reason: str = ""


@dataclass
class TransportCallbacks:
    """Callbacks a transport invokes on the session that owns it."""
    on_open: Callable[[], None]
    on_message: Callable[[Union[str, bytes]], None]
    on_error: Callable[[Exception], None]
    on_close: Callable[[TransportClose], None]


class Transport(Protocol):
    """Bidirectional message transport used by the session manager."""

    state: ConnectionState

    def open(self, url: str) -> None:
        ...

    async def send(self, data: bytes) -> None:
        ...

    async def close(self, code: int = CloseCode.NORMAL, reason: str = "") -> None:
        ...


TransportFactory = Callable[[TransportCallbacks], Transport]

"""
Electrum WebSocket Client

A persistent JSON-RPC 2.0 client for Electrum-protocol servers reachable
over WebSocket.

Features:
- Many concurrent requests multiplexed over one connection
- Subscriptions replayed automatically after every reconnect
- Recovery of JSON frames split across WebSocket messages
- Fixed-delay reconnection and per-request timeouts
- Typed errors for well-known JSON-RPC and bitcoind error codes

Usage:
    from electrum_ws import ElectrumWS, ElectrumWSOptions

    async with ElectrumWS("wss://electrum.example.org:50004") as electrum:
        fee = await electrum.request("blockchain.estimatefee", 1)
        await electrum.subscribe("blockchain.headers", on_header)
"""

# Type definitions
from .types import (
    ElectrumWSEvent,
    ConnectionState,
    SessionState,
    CloseCode,
    RpcRequest,
    RpcResponse,
    RpcNotification,
    PendingRequest,
    Transport,
    TransportCallbacks,
    TransportClose,
    parse_rpc_message,
)

# Configuration
from .config import (
    Config,
    ElectrumWSOptions,
    TransportConfig,
    setup_logging,
)

# Errors
from .errors import (
    ElectrumWSError,
    TransportError,
    RequestTimeoutError,
    UnclassifiedRPCError,
    SessionClosedError,
)
from .rpc_error import (
    RPCError,
    JSON_RPC_ERRORS,
    classify_rpc_error,
    find_rpc_error_code,
)

# Events
from .observable import Observable

# Framing and subscriptions
from .framing import FrameAssembler
from .subscriptions import (
    Subscription,
    SubscriptionRegistry,
    subscription_key,
)

# Transport
from .transport import WebSocketTransport

# Client
from .client import ElectrumWS

__all__ = [
    # Types
    "ElectrumWSEvent",
    "ConnectionState",
    "SessionState",
    "CloseCode",
    "RpcRequest",
    "RpcResponse",
    "RpcNotification",
    "PendingRequest",
    "Transport",
    "TransportCallbacks",
    "TransportClose",
    "parse_rpc_message",

    # Configuration
    "Config",
    "ElectrumWSOptions",
    "TransportConfig",
    "setup_logging",

    # Errors
    "ElectrumWSError",
    "TransportError",
    "RequestTimeoutError",
    "UnclassifiedRPCError",
    "SessionClosedError",
    "RPCError",
    "JSON_RPC_ERRORS",
    "classify_rpc_error",
    "find_rpc_error_code",

    # Events
    "Observable",

    # Framing and subscriptions
    "FrameAssembler",
    "Subscription",
    "SubscriptionRegistry",
    "subscription_key",

    # Transport
    "WebSocketTransport",

    # Client
    "ElectrumWS",
]

__version__ = "1.0.0"

"""
Classification of server side RPC errors.

Electrum servers relay errors from the backing node as free text, often with
the node's JSON error object embedded in it. The numeric code is extracted
from that text and mapped onto the well-known JSON-RPC and bitcoind codes.
"""

import re
from typing import Optional

from .errors import ElectrumWSError


# https://github.com/bitcoin/bitcoin/blob/v25.0/src/rpc/protocol.h
JSON_RPC_ERRORS = {
    -32700: "Parse error",
    -32600: "Invalid request",
    -32601: "Method not found",
    -32602: "Invalid params",
    -32603: "Internal error",
    -1: "Miscellaneous error",
    -3: "Unexpected type was passed as parameter",
    -5: "Invalid address or key",
    -7: "Ran out of memory during operation",
    -8: "Invalid, missing or duplicate parameter",
    -20: "Database error",
    -22: "Error parsing JSON",
    -25: "An error occured while transaction or block submission",
    -26: "Transaction or block was rejected by network rules",
    -27: "Transaction already in chain",
    -28: "Client still warming up",
    -32: "RPC method is deprecated",
}

UNKNOWN_RPC_ERROR = "Unknown JSON RPC error"

_CODE_PATTERN = re.compile(r'"code":\s*(-?\d+)')


class RPCError(ElectrumWSError):
    """Server error carrying a recognized numeric code."""

    def __init__(self, code: int, raw: str = ""):
        self.code = code
        self.message = JSON_RPC_ERRORS.get(code, UNKNOWN_RPC_ERROR)
        self.raw = raw
        super().__init__(f"{self.message} (code: {code})")


def find_rpc_error_code(text: str) -> Optional[int]:
    """Extract the first ``"code": <int>`` occurrence from raw error text."""
    match = _CODE_PATTERN.search(text)
    if not match:
        return None
    return int(match.group(1))


def classify_rpc_error(text: str) -> Optional[RPCError]:
    """
    Map raw error text to an RPCError.

    Args:
        text: Error payload as received from the server

    Returns:
        RPCError with the canonical message, or None when the text carries
        no error code (callers fall back to the raw text)
    """
    code = find_rpc_error_code(text)
    if code is None:
        return None
    return RPCError(code, raw=text)

"""
Shared fixtures: an in-memory transport the tests drive by hand.
"""

import asyncio
import json
from typing import Any, Callable, List, Optional

import pytest

from electrum_ws import ConnectionState, ElectrumWS, ElectrumWSOptions, TransportError
from electrum_ws.types import TransportCallbacks, TransportClose


ENDPOINT = "ws://electrum.test:50003"

Responder = Callable[[dict], Optional[Any]]


class FakeTransport:
    """Transport whose lifecycle is driven explicitly by the test."""

    def __init__(self, callbacks: TransportCallbacks, responder: Optional[Responder] = None):
        self.callbacks = callbacks
        self.responder = responder
        self.state = ConnectionState.CLOSED
        self.url: Optional[str] = None
        self.sent: List[dict] = []
        self.close_calls: List[tuple] = []

    def open(self, url: str) -> None:
        self.url = url
        self.state = ConnectionState.CONNECTING

    async def send(self, data: bytes) -> None:
        if self.state != ConnectionState.OPEN:
            raise TransportError(f"Cannot send, transport is {self.state.value}")
        assert data.endswith(b"\n")
        request = json.loads(data)
        self.sent.append(request)

        if self.responder is not None:
            reply = self.responder(request)
            if reply is not None:
                asyncio.get_running_loop().call_soon(self.deliver, reply)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_calls.append((code, reason))
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return
        self.state = ConnectionState.CLOSING
        asyncio.get_running_loop().call_soon(self.drop, code, reason)

    # Test controls

    def accept(self) -> None:
        self.state = ConnectionState.OPEN
        self.callbacks.on_open()

    def drop(self, code: int = 1006, reason: str = "") -> None:
        if self.state == ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED
        self.callbacks.on_close(TransportClose(code=code, reason=reason))

    def deliver(self, payload: Any) -> None:
        if isinstance(payload, (dict, list)):
            payload = json.dumps(payload, separators=(",", ":")) + "\n"
        self.callbacks.on_message(payload)

    def methods(self) -> List[str]:
        return [request["method"] for request in self.sent]


class TransportFactory:
    """Records every transport the client creates."""

    def __init__(self):
        self.transports: List[FakeTransport] = []
        self.responder: Optional[Responder] = None

    def __call__(self, callbacks: TransportCallbacks) -> FakeTransport:
        transport = FakeTransport(callbacks, responder=self.responder)
        self.transports.append(transport)
        return transport

    @property
    def current(self) -> FakeTransport:
        return self.transports[-1]


def fast_options(**overrides) -> ElectrumWSOptions:
    values = dict(
        reconnect_delay=0.01,
        connected_delay=0.0,
        request_timeout=1.0,
    )
    values.update(overrides)
    return ElectrumWSOptions(**values)


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Poll the event loop until the predicate holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


def result_for(request: dict, result: Any) -> dict:
    return {"jsonrpc": "2.0", "id": request["id"], "result": result}


@pytest.fixture
def factory() -> TransportFactory:
    return TransportFactory()


@pytest.fixture
def make_client(factory):
    """Build clients on the fake transport; call ``await connected(client)`` to finish the handshake."""

    def build(**overrides) -> ElectrumWS:
        return ElectrumWS(ENDPOINT, fast_options(**overrides), transport_factory=factory)

    return build


async def connected(client: ElectrumWS, factory: TransportFactory) -> FakeTransport:
    client.connect()
    transport = factory.current
    transport.accept()
    await client.wait_connected()
    return transport

"""
End-to-end tests against a local ``websockets`` server speaking
newline-delimited JSON-RPC.
"""

import asyncio
import json

import pytest
import pytest_asyncio
import websockets

from electrum_ws import (
    ConnectionState,
    ElectrumWS,
    RPCError,
    TransportCallbacks,
    TransportConfig,
    TransportError,
    WebSocketTransport,
)

from conftest import fast_options, wait_until


class FakeElectrumServer:
    """Answers a handful of Electrum methods and pushes header notifications."""

    def __init__(self):
        self.connections = []
        self.requests = []
        self.server = None

    async def handler(self, ws):
        self.connections.append(ws)
        async for data in ws:
            text = data.decode("utf-8") if isinstance(data, bytes) else data
            for line in text.splitlines():
                request = json.loads(line)
                self.requests.append(request)
                await ws.send(self.reply(request))

    def reply(self, request: dict) -> str:
        method = request["method"]
        if method == "server.version":
            result = ["FakeElectrum 1.0", "1.4"]
        elif method == "blockchain.headers.subscribe":
            result = {"height": 100, "hex": "00" * 8}
        elif method == "blockchain.transaction.broadcast":
            return json.dumps({
                "jsonrpc": "2.0",
                "id": request["id"],
                "error": {"code": 1, "message": '{"code": -26, "message": "bad-txns"}'},
            }) + "\n"
        else:
            result = None
        return json.dumps({"jsonrpc": "2.0", "id": request["id"], "result": result}) + "\n"

    async def push(self, frames):
        for frame in frames:
            await self.connections[-1].send(frame)

    @property
    def url(self) -> str:
        port = self.server.sockets[0].getsockname()[1]
        return f"ws://127.0.0.1:{port}"


@pytest_asyncio.fixture
async def electrum_server():
    fake = FakeElectrumServer()
    fake.server = await websockets.serve(fake.handler, "127.0.0.1", 0)
    try:
        yield fake
    finally:
        fake.server.close()
        await fake.server.wait_closed()


@pytest.mark.asyncio
async def test_request_and_push_over_real_socket(electrum_server):
    headers = []
    async with ElectrumWS(electrum_server.url, fast_options()) as client:
        version = await client.request("server.version", "test", "1.4")
        assert version == ["FakeElectrum 1.0", "1.4"]

        tip = await client.subscribe("blockchain.headers", lambda *args: headers.append(args))
        assert tip["height"] == 100

        # One notification split across two WebSocket messages
        await electrum_server.push([
            '{"jsonrpc": "2.0", "method": "blockchain.headers.subscribe",',
            ' "params": [{"height": 101, "hex": "ff"}]}\n',
        ])
        await wait_until(lambda: len(headers) == 2)

    assert headers[1] == ({"height": 101, "hex": "ff"},)
    assert [r["method"] for r in electrum_server.requests] == [
        "server.version", "blockchain.headers.subscribe"
    ]


@pytest.mark.asyncio
async def test_server_error_is_classified(electrum_server):
    async with ElectrumWS(electrum_server.url, fast_options()) as client:
        with pytest.raises(RPCError) as excinfo:
            await client.request("blockchain.transaction.broadcast", "0200")

    assert excinfo.value.code == -26


@pytest.mark.asyncio
async def test_reconnects_after_server_drops_connection(electrum_server):
    client = ElectrumWS(electrum_server.url, fast_options())
    client.connect()
    await client.wait_connected()

    await electrum_server.connections[0].close(code=1001, reason="restart")
    await wait_until(lambda: len(electrum_server.connections) == 2)
    await client.wait_connected()

    assert await client.request("server.ping") is None
    await client.close()


@pytest.mark.asyncio
async def test_text_frames(electrum_server):
    client = ElectrumWS(
        electrum_server.url,
        fast_options(),
        transport_config=TransportConfig(binary=False)
    )
    client.connect()
    assert await client.request("server.ping") is None
    await client.close()


@pytest.mark.asyncio
async def test_transport_reports_failed_connection():
    events = []
    callbacks = TransportCallbacks(
        on_open=lambda: events.append("open"),
        on_message=lambda data: events.append(("message", data)),
        on_error=lambda error: events.append(("error", type(error))),
        on_close=lambda close: events.append(("close", close.code)),
    )
    transport = WebSocketTransport(callbacks, TransportConfig(open_timeout=1.0))

    # Nothing listens on port 9 locally
    transport.open("ws://127.0.0.1:9")
    await wait_until(lambda: transport.state == ConnectionState.CLOSED, timeout=5.0)

    assert events == [("error", TransportError), ("close", 1006)]


@pytest.mark.asyncio
async def test_transport_send_requires_open_connection():
    callbacks = TransportCallbacks(
        on_open=lambda: None,
        on_message=lambda data: None,
        on_error=lambda error: None,
        on_close=lambda close: None,
    )
    transport = WebSocketTransport(callbacks)

    with pytest.raises(TransportError):
        await transport.send(b"{}\n")


@pytest.mark.asyncio
async def test_transport_close_reports_code(electrum_server):
    closes = []
    opened = asyncio.Event()
    callbacks = TransportCallbacks(
        on_open=opened.set,
        on_message=lambda data: None,
        on_error=lambda error: None,
        on_close=closes.append,
    )
    transport = WebSocketTransport(callbacks)
    transport.open(electrum_server.url)
    await asyncio.wait_for(opened.wait(), timeout=5.0)

    await transport.close(1000, "bye")
    await wait_until(lambda: closes)

    assert transport.state == ConnectionState.CLOSED
    assert closes[0].code == 1000
    assert closes[0].reason == "bye"

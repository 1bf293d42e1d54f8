"""
Electrum WebSocket session manager.

Keeps one persistent WebSocket connection to an Electrum server and
multiplexes JSON-RPC requests and subscriptions over it:

- Request/response correlation by numeric id with per-request timeouts
- Subscription registry replayed after every reconnect
- Recovery of JSON frames split across WebSocket messages
- Fixed-delay reconnection after the connection drops
"""

import asyncio
import inspect
import logging
from dataclasses import replace
from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional, Set
from urllib.parse import urlencode

from .config import ElectrumWSOptions, TransportConfig
from .errors import (
    ElectrumWSError,
    RequestTimeoutError,
    SessionClosedError,
    TransportError,
    UnclassifiedRPCError,
)
from .framing import FrameAssembler
from .observable import Observable
from .rpc_error import classify_rpc_error
from .subscriptions import SUBSCRIBE_SUFFIX, UNSUBSCRIBE_SUFFIX, SubscriptionRegistry
from .transport import WebSocketTransport
from .types import (
    ConnectionState,
    ElectrumWSEvent,
    PendingRequest,
    RpcMessage,
    RpcNotification,
    RpcRequest,
    RpcResponse,
    SessionState,
    Transport,
    TransportCallbacks,
    TransportClose,
    TransportFactory,
)


logger = logging.getLogger("electrum_ws.client")

# Request ids cycle through 1..MAX_REQUEST_ID
MAX_REQUEST_ID = 99_999


class ElectrumWS(Observable):
    """
    Persistent, reconnecting JSON-RPC client for Electrum servers.

    Lifecycle events (see ``ElectrumWSEvent``) are published through the
    ``Observable`` interface: ``client.on("connected", callback)``.

    Usage:
        async with ElectrumWS("wss://electrum.example.org:50004") as electrum:
            height = await electrum.request("blockchain.headers.subscribe")
            await electrum.subscribe("blockchain.scripthash", on_status, scripthash)
    """

    def __init__(
        self,
        endpoint: str,
        options: Optional[ElectrumWSOptions] = None,
        transport_factory: Optional[TransportFactory] = None,
        transport_config: Optional[TransportConfig] = None
    ):
        """
        Initialize the client. Nothing is opened until ``connect()``.

        Args:
            endpoint: WebSocket URL of the Electrum server
            options: Session options (copied, never shared between clients)
            transport_factory: Builds a transport from session callbacks;
                defaults to a ``WebSocketTransport``
            transport_config: Configuration for the default transport
        """
        super().__init__()
        self.endpoint = endpoint
        self.options = replace(options) if options else ElectrumWSOptions()

        if transport_factory is None:
            transport_factory = partial(WebSocketTransport, config=transport_config)
        self._transport_factory = transport_factory
        self._transport: Optional[Transport] = None

        self._state = SessionState.DISCONNECTED
        self._connected = False
        self._closed = False
        self._reconnect = self.options.reconnect

        self._requests: Dict[int, PendingRequest] = {}
        self._next_id = 1
        self._subscriptions = SubscriptionRegistry()
        self._frames = FrameAssembler()

        self._connected_timer: Optional[asyncio.TimerHandle] = None
        self._reconnect_timer: Optional[asyncio.TimerHandle] = None
        self._connect_waiters: Set[asyncio.Future] = set()
        self._background: Set[asyncio.Task] = set()

        if self.options.verbose:
            for event in ElectrumWSEvent:
                self.on(event, partial(self._log_event, event))

    # =========================================================================
    # Public API
    # =========================================================================

    @property
    def verbose(self) -> bool:
        return self.options.verbose

    @property
    def is_connected(self) -> bool:
        """Whether the session is connected and requests are sent immediately."""
        return self._connected

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def pending_count(self) -> int:
        """Number of requests awaiting a response."""
        return len(self._requests)

    @property
    def url(self) -> str:
        """Endpoint including the authentication token, if any."""
        if not self.options.token:
            return self.endpoint
        separator = "&" if "?" in self.endpoint else "?"
        return f"{self.endpoint}{separator}{urlencode({'token': self.options.token})}"

    def connect(self) -> None:
        """
        Open the connection. Must be called from a running event loop.

        Raises:
            SessionClosedError: If the client was closed
        """
        if self._closed:
            raise SessionClosedError("ElectrumWS client is closed")
        if self._transport is not None and self._transport.state in (
            ConnectionState.CONNECTING, ConnectionState.OPEN
        ):
            return
        self._open_transport()

    async def wait_connected(self) -> None:
        """
        Wait until the session reaches the connected state.

        Raises:
            SessionClosedError: If the client is closed while waiting
        """
        if self._connected:
            return
        if self._closed:
            raise SessionClosedError("ElectrumWS client is closed")

        loop = asyncio.get_running_loop()
        waiter: asyncio.Future = loop.create_future()
        self._connect_waiters.add(waiter)

        def resolve(*_: Any) -> None:
            if not waiter.done():
                waiter.set_result(True)

        handle = self.once(ElectrumWSEvent.CONNECTED, resolve)
        try:
            await waiter
        finally:
            self._connect_waiters.discard(waiter)
            self.off(ElectrumWSEvent.CONNECTED, handle)

    async def request(self, method: str, *params: Any) -> Any:
        """
        Send a request and wait for its result.

        Args:
            method: Electrum method name
            *params: Positional method parameters

        Returns:
            The ``result`` field of the response

        Raises:
            RPCError: Server error with a recognized code
            UnclassifiedRPCError: Server error without an extractable code
            RequestTimeoutError: No response within the request timeout
            SessionClosedError: The client was closed before the response
            TransportError: The request could not be sent
        """
        await self.wait_connected()

        request_id = self._allocate_ids(1)
        payload = RpcRequest(method=method, id=request_id, params=list(params))
        future = self._create_request(request_id, method)

        if self.verbose:
            logger.info(f"ElectrumWS SEND: {method} {list(params)}")

        try:
            await self._send(payload)
        except asyncio.CancelledError:
            future.cancel()
            raise
        return await future

    async def batch_request(self, *requests: Mapping[str, Any]) -> List[Any]:
        """
        Send several requests at once.

        Args:
            *requests: Mappings with ``method`` and ``params``

        Returns:
            One entry per request, in input order: the result, or the
            exception that failed that request
        """
        if not requests:
            return []

        await self.wait_connected()

        first_id = self._allocate_ids(len(requests))
        payloads = [
            RpcRequest(
                method=request["method"],
                id=first_id + offset,
                params=list(request.get("params") or [])
            )
            for offset, request in enumerate(requests)
        ]
        futures = [self._create_request(p.id, p.method) for p in payloads]

        try:
            for payload in payloads:
                await self._send(payload)
        except asyncio.CancelledError:
            for future in futures:
                future.cancel()
            raise

        return await asyncio.gather(*futures, return_exceptions=True)

    async def subscribe(
        self,
        method: str,
        callback: Callable[..., Any],
        *params: Any
    ) -> Any:
        """
        Subscribe to server pushes for a method.

        The ``.subscribe`` suffix is appended to ``method``. If the session is
        not connected yet, the subscription is only registered and is issued
        as soon as the connection is established.

        Args:
            method: Method without suffix, e.g. ``blockchain.scripthash``
            callback: Called with ``(*params, initial_result)`` and then with
                the parameters of every push; may be a coroutine function
            *params: Subscription parameters

        Returns:
            Initial result, None if the subscription was deferred
        """
        self._subscriptions.add(method, callback, params)

        if not self._connected:
            return None

        result = await self.request(f"{method}{SUBSCRIBE_SUFFIX}", *params)
        await _call(callback, *params, result)
        return result

    async def unsubscribe(self, method: str, *params: Any) -> Any:
        """
        Remove a subscription and tell the server.

        Returns:
            Result of ``method.unsubscribe``, None if nothing was subscribed
        """
        removed = self._subscriptions.remove(method, params)
        if removed is None:
            return None
        return await self.request(f"{method}{UNSUBSCRIBE_SUFFIX}", *params)

    async def close(self, reason: str = "closed by client") -> bool:
        """
        Close the session for good.

        Pending requests fail with ``SessionClosedError(reason)``. If the
        connection is still open or closing, waits for the close to complete.

        Returns:
            True once the session is closed
        """
        self._reconnect = False
        self._closed = True
        self._state = SessionState.CLOSED

        for request_id, request in list(self._requests.items()):
            request.cancel_timeout()
            self._requests.pop(request_id, None)
            if self.verbose:
                logger.info(f"Rejecting pending request: {request.method}")
            if not request.future.done():
                request.future.set_exception(SessionClosedError(reason))

        for waiter in list(self._connect_waiters):
            if not waiter.done():
                waiter.set_exception(SessionClosedError(reason))

        self._cancel_timer("_reconnect_timer")
        self._cancel_timer("_connected_timer")
        self._subscriptions.clear()

        transport = self._transport
        if transport is not None and transport.state != ConnectionState.CLOSED:
            # The close event may take a while after the close frame is sent
            closed: asyncio.Future = asyncio.get_running_loop().create_future()

            def resolve(*_: Any) -> None:
                if not closed.done():
                    closed.set_result(True)

            self.once(ElectrumWSEvent.CLOSE, resolve)
            # A transport already closing only has to be waited for
            if transport.state != ConnectionState.CLOSING:
                await transport.close(self.options.close_code, reason)
            await closed

        self._connected = False
        return True

    async def __aenter__(self) -> "ElectrumWS":
        self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close("client exited")

    # =========================================================================
    # Private Implementation
    # =========================================================================

    def _open_transport(self) -> None:
        self._reconnect_timer = None
        self._frames.reset()
        self._state = SessionState.CONNECTING

        callbacks = TransportCallbacks(
            on_open=self._on_open,
            on_message=self._on_message,
            on_error=self._on_error,
            on_close=self._on_close
        )
        self._transport = self._transport_factory(callbacks)
        logger.info(f"Connecting to {self.endpoint}")
        self._transport.open(self.url)

    def _on_open(self) -> None:
        self.fire(ElectrumWSEvent.OPEN)

        loop = asyncio.get_running_loop()
        self._connected_timer = loop.call_later(
            self.options.connected_delay, self._on_connected
        )

    def _on_connected(self) -> None:
        self._connected_timer = None
        self._connected = True
        self._state = SessionState.CONNECTED
        logger.info(f"Connected to {self.endpoint}")
        self.fire(ElectrumWSEvent.CONNECTED)

        # Replay registered subscriptions
        for subscription in self._subscriptions.snapshot():
            self._spawn(
                self.subscribe(subscription.method, subscription.callback, *subscription.params),
                self._on_resubscribe_done
            )

    def _on_resubscribe_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return

        logger.warning(f"Resubscription failed, dropping connection: {error}")
        transport = self._transport
        if transport is not None and transport.state in (
            ConnectionState.CONNECTING, ConnectionState.OPEN
        ):
            self._spawn(transport.close(self.options.close_code, str(error)))

    def _on_message(self, data: Any) -> None:
        for msg in self._frames.feed(data):
            self.fire(ElectrumWSEvent.MESSAGE, msg)
            self._dispatch(msg)

    def _dispatch(self, msg: RpcMessage) -> None:
        if isinstance(msg, RpcResponse):
            self._handle_response(msg)
            # A frame may answer a request and carry a push at once
            msg = msg.as_push()
        if isinstance(msg, RpcNotification):
            self._handle_push(msg)

    def _handle_response(self, response: RpcResponse) -> None:
        request = self._requests.pop(response.id, None)
        if request is None:
            logger.debug(f"Dropping response for unknown request ID {response.id}")
            return

        request.cancel_timeout()
        if request.future.done():
            return

        if response.has_result:
            request.future.set_result(response.result)
        elif response.error:
            raw = response.error_text
            error = classify_rpc_error(raw)
            if error is None:
                error = UnclassifiedRPCError(raw, code=response.error_code)
            request.future.set_exception(error)
        else:
            request.future.set_exception(ElectrumWSError("No result"))

    def _handle_push(self, push: RpcNotification) -> None:
        params = push.param_list
        subscription = self._subscriptions.match_push(push.method, params)
        if subscription is None:
            return

        try:
            result = subscription.callback(*params)
        except Exception as e:
            logger.error(f"Error in subscription callback [{subscription.key}]: {e}", exc_info=True)
            return
        if inspect.isawaitable(result):
            self._spawn(result)

    def _on_error(self, error: Exception) -> None:
        if self.verbose:
            logger.error(f"ElectrumWS ERROR: {error}")
        self.fire(ElectrumWSEvent.ERROR, error)

    def _on_close(self, event: TransportClose) -> None:
        self.fire(ElectrumWSEvent.CLOSE, event)

        if not self._connected:
            self._cancel_timer("_connected_timer")
        else:
            logger.warning(f"Disconnected from {self.endpoint} (code={event.code})")
            self.fire(ElectrumWSEvent.DISCONNECTED)

        self._connected = False

        if self._reconnect and not self._closed:
            self._state = SessionState.CONNECTING
            self.fire(ElectrumWSEvent.RECONNECTING)
            loop = asyncio.get_running_loop()
            self._reconnect_timer = loop.call_later(
                self.options.reconnect_delay, self._open_transport
            )
        elif not self._closed:
            self._state = SessionState.DISCONNECTED

    def _allocate_ids(self, count: int) -> int:
        """
        Reserve a block of ``count`` sequential ids unused by pending requests.

        Returns:
            First id of the block
        """
        if count > MAX_REQUEST_ID - len(self._requests):
            raise ElectrumWSError("Too many pending requests")

        start = self._next_id
        for _ in range(MAX_REQUEST_ID):
            if start + count - 1 > MAX_REQUEST_ID:
                start = 1
            block = range(start, start + count)
            busy = [i for i in block if i in self._requests]
            if not busy:
                self._next_id = start + count
                if self._next_id > MAX_REQUEST_ID:
                    self._next_id = 1
                return start
            start = busy[-1] + 1

        raise ElectrumWSError("No free block of request IDs")

    def _create_request(self, request_id: int, method: str) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        timeout = loop.call_later(
            self.options.request_timeout, self._on_request_timeout, request_id
        )
        self._requests[request_id] = PendingRequest(
            id=request_id,
            method=method,
            future=future,
            timeout=timeout
        )
        future.add_done_callback(partial(self._on_request_done, request_id))
        return future

    def _on_request_done(self, request_id: int, future: asyncio.Future) -> None:
        # Only cancellation by the caller leaves the entry behind
        if not future.cancelled():
            return
        request = self._requests.get(request_id)
        if request is not None and request.future is future:
            request.cancel_timeout()
            del self._requests[request_id]

    def _on_request_timeout(self, request_id: int) -> None:
        request = self._requests.pop(request_id, None)
        if request is None:
            return
        logger.warning(f"Request {request.method} [{request_id}] timed out after {self.options.request_timeout}s")
        if not request.future.done():
            request.future.set_exception(RequestTimeoutError(request_id, request.method))

    async def _send(self, payload: RpcRequest) -> bool:
        """
        Send a framed request.

        If the send fails, the pending entry is removed and its future fails
        with the TransportError.

        Returns:
            True if the frame was handed to the transport
        """
        transport = self._transport
        try:
            if transport is None:
                raise TransportError("No transport")
            await transport.send(payload.to_frame())
            return True
        except TransportError as e:
            logger.warning(f"Failed to send {payload.method} [{payload.id}]: {e}")
            request = self._requests.pop(payload.id, None)
            if request is not None:
                request.cancel_timeout()
                if not request.future.done():
                    request.future.set_exception(e)
            return False

    def _spawn(self, awaitable: Any, done: Optional[Callable[[asyncio.Task], None]] = None) -> asyncio.Task:
        task = asyncio.ensure_future(awaitable)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        if done is not None:
            task.add_done_callback(done)
        else:
            task.add_done_callback(_log_task_failure)
        return task

    def _cancel_timer(self, name: str) -> None:
        timer = getattr(self, name)
        if timer is not None:
            timer.cancel()
            setattr(self, name, None)

    @staticmethod
    def _log_event(event: ElectrumWSEvent, *payload: Any) -> None:
        if payload:
            logger.info(f"ElectrumWS - {event.value.upper()}: {payload[0]}")
        else:
            logger.info(f"ElectrumWS - {event.value.upper()}")


async def _call(callback: Callable[..., Any], *args: Any) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Background task failed: {error}")

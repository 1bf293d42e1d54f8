"""
WebSocket transport built on the ``websockets`` library.

Adapts a ``websockets`` client connection to the callback interface the
session manager consumes: the connection is opened and read by a
background task which reports open, message, error and close through
``TransportCallbacks``.
"""

import asyncio
import logging
from typing import Optional

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, WebSocketException

from .config import TransportConfig
from .errors import TransportError
from .types import CloseCode, ConnectionState, TransportCallbacks, TransportClose


logger = logging.getLogger("electrum_ws.transport")


class WebSocketTransport:
    """
    One WebSocket connection attempt.

    A transport is single use: once closed, the session creates a new one
    for the next connection attempt.
    """

    def __init__(
        self,
        callbacks: TransportCallbacks,
        config: Optional[TransportConfig] = None
    ):
        """
        Initialize the transport.

        Args:
            callbacks: Session callbacks for open/message/error/close
            config: Transport configuration
        """
        self.config = config or TransportConfig()
        self.state = ConnectionState.CLOSED
        self._callbacks = callbacks
        self._ws = None
        self._task: Optional[asyncio.Task] = None

    def open(self, url: str) -> None:
        """Start connecting in the background. Requires a running event loop."""
        if self._task is not None:
            raise TransportError("Transport already opened")

        self.state = ConnectionState.CONNECTING
        self._task = asyncio.get_running_loop().create_task(self._run(url))

    async def send(self, data: bytes) -> None:
        """
        Send one frame.

        Raises:
            TransportError: If the connection is not open or the send fails
        """
        if self._ws is None or self.state != ConnectionState.OPEN:
            raise TransportError(f"Cannot send, transport is {self.state.value}")

        payload = data if self.config.binary else data.decode("utf-8")
        try:
            await self._ws.send(payload)
        except ConnectionClosed as e:
            raise TransportError(f"Connection closed while sending: {e}") from e

    async def close(self, code: int = CloseCode.NORMAL, reason: str = "") -> None:
        """
        Close the connection.

        The close notification is delivered through ``on_close`` once the
        closing handshake completes.
        """
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return

        self.state = ConnectionState.CLOSING

        if self._ws is None:
            # Still handshaking: abandon the attempt
            if self._task is not None:
                self._task.cancel()
            self._finish(TransportClose(code=code, reason=reason))
            return

        await self._ws.close(code=code, reason=reason)

    # =========================================================================
    # Private Implementation
    # =========================================================================

    async def _run(self, url: str) -> None:
        try:
            self._ws = await websockets.connect(
                url,
                max_size=self.config.max_message_size,
                open_timeout=self.config.open_timeout
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            logger.warning(f"Failed to connect to {url}: {e}")
            self._callbacks.on_error(TransportError(f"Failed to connect to {url}: {e}"))
            self._finish(TransportClose(code=CloseCode.ABNORMAL, reason=str(e)))
            return

        self.state = ConnectionState.OPEN
        logger.info(f"Connected to {url}")
        self._callbacks.on_open()

        try:
            async for data in self._ws:
                self._callbacks.on_message(data)
        except ConnectionClosedError as e:
            logger.warning(f"Connection lost: {e}")
            self._callbacks.on_error(TransportError(f"Connection lost: {e}"))
        except Exception as e:
            logger.error(f"Receive loop failed: {e}", exc_info=True)
            self._callbacks.on_error(TransportError(f"Receive loop failed: {e}"))
            await self._ws.close(code=CloseCode.INTERNAL_ERROR, reason="receive loop failed")
        finally:
            self._finish(TransportClose(
                code=self._ws.close_code or CloseCode.ABNORMAL,
                reason=self._ws.close_reason or ""
            ))

    def _finish(self, event: TransportClose) -> None:
        if self.state == ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED
        logger.debug(f"Transport closed code={event.code} reason={event.reason!r}")
        self._callbacks.on_close(event)

"""WebSocket connection used to exchange SIP messages."""

import asyncio
import logging
import ssl
from typing import Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import WebSocketException

from .errors import TransportError
from .models import ClientOptions

logger = logging.getLogger(__name__)

USER_AGENT = "wsctl"


def create_ssl_context(insecure: bool) -> ssl.SSLContext:
    """TLS context for wss:// URLs, optionally skipping certificate checks."""
    context = ssl.create_default_context()
    if insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


class WebSocketConnection:
    """Single WebSocket connection with per-operation deadlines."""

    def __init__(self, options: ClientOptions):
        self.options = options
        self._ws: Optional[ClientConnection] = None

    async def connect(self) -> None:
        """Dial the server and negotiate the sub-protocol."""
        try:
            self._ws = await connect(
                self.options.url,
                origin=self.options.origin,
                subprotocols=[self.options.proto],
                user_agent_header=USER_AGENT,
                ssl=create_ssl_context(self.options.insecure) if self.options.secure else None,
                open_timeout=self.options.timeout_send / 1000,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise TransportError(f"cannot connect to {self.options.url}: {e}") from e
        logger.info(f"Connected to {self.options.url}, subprotocol {self._ws.subprotocol}")

    async def close(self) -> None:
        """Close connection."""
        if self._ws:
            await self._ws.close()
            self._ws = None

    async def __aenter__(self) -> "WebSocketConnection":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _require_open(self) -> ClientConnection:
        if self._ws is None:
            raise TransportError("connection is not open")
        return self._ws

    async def send(self, data: bytes, timeout_ms: int) -> None:
        """Write one text frame, failing once the deadline passes."""
        ws = self._require_open()
        try:
            await asyncio.wait_for(ws.send(data, text=True), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError as e:
            raise TransportError(f"timeout sending after {timeout_ms} ms") from e
        except (OSError, WebSocketException) as e:
            raise TransportError(f"send failed: {e}") from e
        logger.debug(f"Sent {len(data)} bytes")

    async def receive(self, max_bytes: int, timeout_ms: int) -> bytes:
        """Read the next message, truncated to `max_bytes`."""
        ws = self._require_open()
        try:
            message = await asyncio.wait_for(ws.recv(decode=False), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError as e:
            raise TransportError(f"timeout receiving after {timeout_ms} ms") from e
        except (OSError, WebSocketException) as e:
            raise TransportError(f"receive failed: {e}") from e
        logger.debug(f"Received {len(message)} bytes")
        return message[:max_bytes]

"""SIP request/response exchange with transparent digest authentication."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from ..models import ClientOptions
from .auth import AuthContext, ChallengeKind, build_authorization_header, parse_auth_header
from .messages import (
    find_header,
    first_line,
    parse_request_line,
    parse_response_code,
    rebuild_request,
)

logger = logging.getLogger(__name__)

RECEIVE_BUFFER_SIZE = 8192
# Responses this short cannot carry a status line plus a challenge header.
MIN_CHALLENGE_LENGTH = 24


class ExchangeState(str, Enum):
    """Progress of a single exchange."""
    IDLE = "idle"
    SENT = "sent"
    AWAITING_INITIAL_RESPONSE = "awaiting_initial_response"
    CHALLENGE_DETECTED = "challenge_detected"
    RESENDING_REQUEST = "resending_request"
    AWAITING_FINAL_RESPONSE = "awaiting_final_response"
    DONE = "done"


class Connection(Protocol):
    """Bidirectional byte-stream connection with deadlines."""

    async def send(self, data: bytes, timeout_ms: int) -> None: ...

    async def receive(self, max_bytes: int, timeout_ms: int) -> bytes: ...


@dataclass
class ExchangeResult:
    """Outcome of an exchange."""
    request: bytes
    response: Optional[bytes] = None
    authenticated: bool = False
    state: ExchangeState = ExchangeState.DONE


def format_frame(label: str, data: bytes) -> str:
    """Human-readable dump of a sent or received frame."""
    return f"{label} ({len(data)} bytes):\n[[{data.decode('utf-8', 'replace')}]]"


class ResponseManager:
    """Sends a request and answers a single 401/407 challenge.

    At most one authenticated retry is made; a second challenge is
    reported as the final response.
    """

    def __init__(
        self,
        connection: Connection,
        options: ClientOptions,
        on_status: Optional[Callable[[str], None]] = None,
    ):
        self.connection = connection
        self.options = options
        self.on_status = on_status
        self._state = ExchangeState.IDLE
        self._request: bytes = b""
        self._response: Optional[bytes] = None

    @property
    def state(self) -> ExchangeState:
        """Current exchange state."""
        return self._state

    def _notify(self, text: str) -> None:
        if self.on_status:
            self.on_status(text)

    async def _send(self, message: bytes, label: str) -> None:
        """Send SIP message."""
        await self.connection.send(message, self.options.timeout_send)
        self._request = message
        self._notify(format_frame(label, message))

    async def _receive(self) -> bytes:
        """Receive SIP response."""
        response = await self.connection.receive(RECEIVE_BUFFER_SIZE, self.options.timeout_recv)
        logger.debug(f"Received {parse_response_code(response)}")
        self._response = response
        self._notify(format_frame("Receiving", response))
        return response

    def detect_challenge(self, response: bytes) -> Optional[ChallengeKind]:
        """Return the challenge kind if this response should be answered."""
        if not self.options.auth_enabled:
            return None
        if len(response) <= MIN_CHALLENGE_LENGTH:
            return None
        return ChallengeKind.from_status_line(first_line(response))

    def build_authenticated_request(self, request: bytes, response: bytes) -> Optional[bytes]:
        """Answer the challenge in `response` by rebuilding `request`.

        Returns None when there is no challenge to answer or any part of it
        cannot be parsed.
        """
        kind = self.detect_challenge(response)
        if kind is None:
            return None

        header = find_header(response, kind.header_name)
        if header is None:
            logger.debug(f"No {kind.header_name} header in challenge")
            return None
        params = parse_auth_header(header.value.decode('utf-8', 'replace'))
        if params is None:
            logger.debug(f"Unsupported challenge: {header.value!r}")
            return None
        self._state = ExchangeState.CHALLENGE_DETECTED

        request_line = parse_request_line(request)
        if request_line is None:
            logger.debug("Malformed request line, not answering challenge")
            return None
        params["method"], params["uri"] = request_line
        self._notify(f"\nAuth params map:\n    {params}\n")

        context = AuthContext.create(self.options.auth_user, self.options.auth_password, params)
        auth_value = build_authorization_header(context)
        if auth_value is None:
            logger.debug("Challenge is missing realm or nonce")
            return None

        new_request = rebuild_request(request, kind.auth_header_name, auth_value)
        if new_request is None:
            logger.debug("Missing or malformed CSeq header, not answering challenge")
        return new_request

    async def handle_response(self, request: bytes, response: bytes) -> bool:
        """Resend `request` with credentials if `response` is a challenge.

        Returns True when the challenge was answered and the reply read.
        """
        new_request = self.build_authenticated_request(request, response)
        if new_request is None:
            self._state = ExchangeState.DONE
            return False

        self._state = ExchangeState.RESENDING_REQUEST
        await self._send(new_request, "Resending")

        self._state = ExchangeState.AWAITING_FINAL_RESPONSE
        await self._receive()

        self._state = ExchangeState.DONE
        return True

    async def run(self, request: bytes) -> ExchangeResult:
        """Send `request`, read the reply and answer a digest challenge."""
        self._state = ExchangeState.IDLE
        self._response = None

        await self._send(request, "Sending")
        self._state = ExchangeState.SENT

        if not self.options.receive:
            self._state = ExchangeState.DONE
            return ExchangeResult(request=request, state=self._state)

        self._state = ExchangeState.AWAITING_INITIAL_RESPONSE
        response = await self._receive()

        authenticated = False
        if self.options.proto == "sip":
            authenticated = await self.handle_response(request, response)
        self._state = ExchangeState.DONE

        return ExchangeResult(
            request=self._request,
            response=self._response,
            authenticated=authenticated,
            state=self._state,
        )

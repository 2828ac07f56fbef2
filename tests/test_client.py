"""Tests for the request/response exchange and challenge handling."""

import asyncio
import hashlib

import pytest

from wsctl.errors import TransportError
from wsctl.models import ClientOptions
from wsctl.sip.client import ExchangeState, ResponseManager

REQUEST = (
    b"REGISTER sip:test@sip.test SIP/2.0\r\n"
    b"Via: SIP/2.0/WSS client.invalid;branch=z9hG4bKtest\r\n"
    b"From: <sip:alice@sip.test>;tag=abcd1234\r\n"
    b"To: <sip:alice@sip.test>\r\n"
    b"Call-ID: test-12345678\r\n"
    b"CSeq: 5 REGISTER\r\n"
    b"Content-Length: 0\r\n"
    b"\r\n"
)

UNAUTHORIZED = (
    b"SIP/2.0 401 Unauthorized\r\n"
    b'WWW-Authenticate: Digest realm="sip.test", nonce="abc123"\r\n'
    b"\r\n"
)

PROXY_REQUIRED = (
    b"SIP/2.0 407 Proxy Authentication Required\r\n"
    b'Proxy-Authenticate: Digest realm="sip.test", nonce="n2", qop="auth", opaque="o1"\r\n'
    b"\r\n"
)

OK = b"SIP/2.0 200 OK\r\nCSeq: 6 REGISTER\r\nContent-Length: 0\r\n\r\n"


def md5(text: str) -> str:
    return hashlib.md5(text.encode()).hexdigest()


class FakeConnection:
    """In-memory connection replaying canned responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.sent = []
        self.timeouts = []

    async def send(self, data: bytes, timeout_ms: int) -> None:
        self.sent.append(data)
        self.timeouts.append(("send", timeout_ms))

    async def receive(self, max_bytes: int, timeout_ms: int) -> bytes:
        self.timeouts.append(("receive", timeout_ms))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response[:max_bytes]


def make_options(**kwargs) -> ClientOptions:
    data = {"auth_user": "alice", "auth_password": "secret"}
    data.update(kwargs)
    return ClientOptions(**data)


def run_exchange(connection, options, request=REQUEST):
    statuses = []
    manager = ResponseManager(connection, options, on_status=statuses.append)
    result = asyncio.run(manager.run(request))
    return manager, result, statuses


def test_www_challenge_is_answered():
    """Test 401 challenge triggers an authenticated resend."""
    connection = FakeConnection(UNAUTHORIZED, OK)
    manager, result, _ = run_exchange(connection, make_options())

    assert result.authenticated is True
    assert result.response == OK
    assert result.state == ExchangeState.DONE
    assert manager.state == ExchangeState.DONE
    assert len(connection.sent) == 2

    ha1 = md5("alice:sip.test:secret")
    ha2 = md5("REGISTER:sip:test@sip.test")
    response = md5(f"{ha1}:abc123:{ha2}")
    resent = connection.sent[1]
    assert result.request == resent
    assert (
        b"CSeq: 6 REGISTER\r\n"
        b'Authorization: Digest username="alice", realm="sip.test", nonce="abc123", '
        b'uri="sip:test@sip.test", algorithm=MD5, response="' + response.encode() + b'"\r\n'
    ) in resent
    assert b"CSeq: 5 REGISTER" not in resent


def test_proxy_challenge_is_answered():
    """Test 407 challenge uses Proxy-Authorization with qop fields."""
    connection = FakeConnection(PROXY_REQUIRED, OK)
    _, result, _ = run_exchange(connection, make_options())

    assert result.authenticated is True
    resent = connection.sent[1]
    assert b"CSeq: 6 REGISTER\r\nProxy-Authorization: Digest " in resent
    assert b"\r\nAuthorization:" not in resent
    assert b"nc=00000001" in resent
    assert b'opaque="o1"' in resent


def test_default_username():
    """Test username falls back to the default when unset."""
    connection = FakeConnection(UNAUTHORIZED, OK)
    run_exchange(connection, make_options(auth_user=""))
    assert b'Digest username="test"' in connection.sent[1]


def test_no_password_never_authenticates():
    """Test challenge is reported as-is without a password."""
    connection = FakeConnection(UNAUTHORIZED)
    _, result, _ = run_exchange(connection, make_options(auth_password=""))

    assert result.authenticated is False
    assert result.response == UNAUTHORIZED
    assert connection.sent == [REQUEST]


def test_short_response_never_authenticates():
    """Test responses of 24 bytes or fewer are not inspected."""
    short = b"SIP/2.0 401 Unauthorized"
    assert len(short) == 24
    connection = FakeConnection(short)
    manager, result, _ = run_exchange(connection, make_options())

    assert result.authenticated is False
    assert manager.detect_challenge(short) is None
    assert len(connection.sent) == 1


def test_final_response_is_not_challenged():
    """Test non-challenge responses end the exchange."""
    connection = FakeConnection(OK)
    _, result, _ = run_exchange(connection, make_options())

    assert result.authenticated is False
    assert result.response == OK
    assert len(connection.sent) == 1


def test_second_challenge_is_not_retried():
    """Test at most one authenticated retry is made."""
    connection = FakeConnection(UNAUTHORIZED, UNAUTHORIZED)
    _, result, _ = run_exchange(connection, make_options())

    assert result.authenticated is True
    assert result.response == UNAUTHORIZED
    assert len(connection.sent) == 2


def test_unsupported_challenge_is_not_answered():
    """Test non-Digest challenge leaves the response final."""
    response = b'SIP/2.0 401 Unauthorized\r\nWWW-Authenticate: Basic realm="x"\r\n\r\n'
    connection = FakeConnection(response)
    manager, result, _ = run_exchange(connection, make_options())

    assert result.authenticated is False
    assert result.response == response
    assert manager.state == ExchangeState.DONE
    assert len(connection.sent) == 1


def test_missing_challenge_header_is_not_answered():
    """Test 407 without Proxy-Authenticate is final."""
    response = b'SIP/2.0 407 Proxy Authentication Required\r\nWWW-Authenticate: Digest realm="x", nonce="y"\r\n\r\n'
    connection = FakeConnection(response)
    _, result, _ = run_exchange(connection, make_options())

    assert result.authenticated is False
    assert len(connection.sent) == 1


def test_missing_sequence_header_is_not_answered():
    """Test rebuild failure aborts the retry."""
    request = b"REGISTER sip:test@sip.test SIP/2.0\r\nCall-ID: c1\r\n\r\n"
    connection = FakeConnection(UNAUTHORIZED)
    _, result, _ = run_exchange(connection, make_options(), request=request)

    assert result.authenticated is False
    assert connection.sent == [request]


def test_malformed_request_line_is_not_answered():
    """Test request line without three tokens aborts the retry."""
    request = b"REGISTER\r\nCSeq: 1 REGISTER\r\n\r\n"
    connection = FakeConnection(UNAUTHORIZED)
    _, result, _ = run_exchange(connection, make_options(), request=request)

    assert result.authenticated is False
    assert len(connection.sent) == 1


def test_non_sip_protocol_skips_authentication():
    """Test auth handling only applies to the sip sub-protocol."""
    connection = FakeConnection(UNAUTHORIZED)
    _, result, _ = run_exchange(connection, make_options(proto="chat"))

    assert result.authenticated is False
    assert len(connection.sent) == 1


def test_receive_disabled():
    """Test exchange ends after sending when not waiting for replies."""
    connection = FakeConnection()
    manager, result, statuses = run_exchange(connection, make_options(receive=False))

    assert result.response is None
    assert result.authenticated is False
    assert manager.state == ExchangeState.DONE
    assert connection.sent == [REQUEST]
    assert len(statuses) == 1


def test_status_messages():
    """Test status text reports each frame."""
    connection = FakeConnection(UNAUTHORIZED, OK)
    _, _, statuses = run_exchange(connection, make_options())

    labels = [s.split(" (")[0] for s in statuses if not s.startswith("\n")]
    assert labels == ["Sending", "Receiving", "Resending", "Receiving"]
    assert statuses[0] == f"Sending ({len(REQUEST)} bytes):\n[[{REQUEST.decode()}]]"
    assert any("Auth params map" in s and "'method': 'REGISTER'" in s for s in statuses)


def test_configured_timeouts_are_used():
    """Test each send and receive gets its configured deadline."""
    connection = FakeConnection(UNAUTHORIZED, OK)
    run_exchange(connection, make_options(timeout_send=150, timeout_recv=250))

    assert connection.timeouts == [
        ("send", 150), ("receive", 250), ("send", 150), ("receive", 250),
    ]


def test_transport_error_propagates():
    """Test receive failures abort the exchange."""
    connection = FakeConnection(TransportError("timeout receiving after 20000 ms"))
    manager = ResponseManager(connection, make_options())

    with pytest.raises(TransportError):
        asyncio.run(manager.run(REQUEST))
    assert manager.state == ExchangeState.AWAITING_INITIAL_RESPONSE


def test_transport_error_on_resend_propagates():
    """Test failures reading the final response are fatal."""
    connection = FakeConnection(UNAUTHORIZED, TransportError("closed"))
    manager = ResponseManager(connection, make_options())

    with pytest.raises(TransportError):
        asyncio.run(manager.run(REQUEST))
    assert manager.state == ExchangeState.AWAITING_FINAL_RESPONSE

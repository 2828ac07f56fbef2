"""SIP Digest Authentication (RFC 2617).

Parses WWW-Authenticate / Proxy-Authenticate challenges and builds the
matching Authorization / Proxy-Authorization header values.
"""

import base64
import hashlib
import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

DEFAULT_USERNAME = "test"
NONCE_COUNT = "00000001"
CNONCE_BYTES = 12


class ChallengeKind(Enum):
    """Which side of the request path issued the challenge."""

    WWW = ("SIP/2.0 401 ", "WWW-Authenticate:", "Authorization")
    PROXY = ("SIP/2.0 407 ", "Proxy-Authenticate:", "Proxy-Authorization")

    def __init__(self, status_prefix: str, header_name: str, auth_header_name: str):
        self.status_prefix = status_prefix
        self.header_name = header_name
        self.auth_header_name = auth_header_name

    @classmethod
    def from_status_line(cls, status_line: bytes) -> Optional["ChallengeKind"]:
        """Map a 401/407 status line to its challenge kind."""
        for kind in cls:
            if status_line.startswith(kind.status_prefix.encode()):
                return kind
        return None


@dataclass
class AuthContext:
    """Credentials plus challenge parameters for a single rebuild."""
    password: str
    params: dict[str, str] = field(default_factory=dict)
    username: str = DEFAULT_USERNAME

    @classmethod
    def create(cls, username: Optional[str], password: str, params: dict[str, str]) -> "AuthContext":
        return cls(password=password, params=dict(params), username=username or DEFAULT_USERNAME)


def parse_auth_header(header: str) -> Optional[dict[str, str]]:
    """Parse a WWW-Authenticate/Proxy-Authenticate header value.

    Returns the challenge parameters, or None if the value is not a Digest
    challenge carrying at least one parameter.
    """
    parts = header.strip(" \t").split(" ", 1)
    if len(parts) != 2 or parts[0] != "Digest":
        return None

    params = {}
    for segment in parts[1].split(","):
        key, sep, value = segment.partition("=")
        if not sep:
            continue
        params[key.strip('" \t')] = value.strip('" \t')

    return params or None


def md5_hex(data: str) -> str:
    """Lower-case hex MD5 digest."""
    return hashlib.md5(data.encode('utf-8')).hexdigest()


def generate_cnonce() -> str:
    """Random client nonce: 12 bytes from the OS CSPRNG, base64 encoded."""
    return base64.b64encode(secrets.token_bytes(CNONCE_BYTES)).decode('ascii')


def compute_digest_response(
    username: str,
    password: str,
    realm: str,
    nonce: str,
    method: str,
    uri: str,
    qop: Optional[str] = None,
    cnonce: Optional[str] = None,
    nc: str = NONCE_COUNT,
) -> str:
    """Compute digest authentication response hash."""
    # HA1 = MD5(username:realm:password)
    ha1 = md5_hex(f"{username}:{realm}:{password}")

    # HA2 = MD5(method:uri)
    ha2 = md5_hex(f"{method}:{uri}")

    if qop is None:
        return md5_hex(f"{ha1}:{nonce}:{ha2}")
    return md5_hex(f"{ha1}:{nonce}:{nc}:{cnonce}:{qop}:{ha2}")


def build_authorization_header(context: AuthContext) -> Optional[str]:
    """Build the Authorization header value for a digest challenge.

    The challenge parameters must already carry `method` and `uri` from the
    original request line. Returns None when `realm` or `nonce` is missing.
    """
    params = context.params
    if "realm" not in params or "nonce" not in params:
        return None

    realm = params["realm"]
    nonce = params["nonce"]
    method = params.get("method", "")
    uri = params.get("uri", "")
    qop = params.get("qop")

    if qop is None:
        response = compute_digest_response(
            username=context.username,
            password=context.password,
            realm=realm,
            nonce=nonce,
            method=method,
            uri=uri,
        )
        return (
            f'Digest username="{context.username}", realm="{realm}", nonce="{nonce}", '
            f'uri="{uri}", algorithm=MD5, response="{response}"'
        )

    cnonce = generate_cnonce()
    response = compute_digest_response(
        username=context.username,
        password=context.password,
        realm=realm,
        nonce=nonce,
        method=method,
        uri=uri,
        qop=qop,
        cnonce=cnonce,
    )
    return (
        f'Digest username="{context.username}", realm="{realm}", nonce="{nonce}", '
        f'uri="{uri}", cnonce="{cnonce}", nc={NONCE_COUNT}, qop={qop}, '
        f'opaque="{params.get("opaque", "")}", algorithm=MD5, response="{response}"'
    )

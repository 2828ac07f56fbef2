"""Raw SIP message inspection and rewriting."""

import re
from dataclasses import dataclass
from typing import Iterator, Optional

SEQUENCE_HEADERS = ("CSeq:", "s:")


@dataclass(frozen=True)
class HeaderLine:
    """A header line located in a raw message buffer."""
    line: bytes  # whole line, trimmed
    value: bytes  # text after the header name, trimmed
    start: int  # offset of the header name
    end: int  # offset just past the line terminator


def iter_lines(buf: bytes) -> Iterator[tuple[int, int, bytes]]:
    """Yield (start, end, content) for each LF-terminated line.

    `end` includes the terminator; `content` does not.
    """
    pos = 0
    while pos < len(buf):
        nl = buf.find(b"\n", pos)
        if nl < 0:
            yield pos, len(buf), buf[pos:]
            return
        yield pos, nl + 1, buf[pos:nl]
        pos = nl + 1


def first_line(buf: bytes) -> bytes:
    """Status or request line, without its terminator."""
    for _, _, content in iter_lines(buf):
        return content.rstrip(b"\r")
    return b""


def find_header(buf: bytes, name: str) -> Optional[HeaderLine]:
    """Find the first line starting with `name` (including its colon)."""
    token = name.encode()
    for start, end, content in iter_lines(buf):
        stripped = content.lstrip(b" \t")
        if not stripped.startswith(token):
            continue
        line = stripped.strip(b" \t\r")
        return HeaderLine(
            line=line,
            value=line[len(token):].strip(b" \t"),
            start=start + len(content) - len(stripped),
            end=end,
        )
    return None


def find_sequence_header(buf: bytes) -> Optional[HeaderLine]:
    """Locate CSeq, falling back to its compact form."""
    for name in SEQUENCE_HEADERS:
        header = find_header(buf, name)
        if header is not None:
            return header
    return None


def parse_request_line(request: bytes) -> Optional[tuple[str, str]]:
    """Extract (method, uri) from a request line."""
    parts = first_line(request).split(None, 2)
    if len(parts) != 3:
        return None
    return parts[0].decode('utf-8', 'replace'), parts[1].decode('utf-8', 'replace')


def parse_response_code(response: bytes) -> int:
    """Extract response code from SIP response."""
    match = re.match(rb"SIP/2\.0 (\d+)", response)
    return int(match.group(1)) if match else 0


def rebuild_request(request: bytes, auth_header_name: str, auth_value: str) -> Optional[bytes]:
    """Rebuild a request with CSeq + 1 and an auth header after it.

    Everything before and after the sequence header line is kept verbatim.
    Returns None when the sequence header is missing or malformed.
    """
    header = find_sequence_header(request)
    if header is None:
        return None

    tokens = header.line.split(None, 2)
    if len(tokens) != 3:
        return None
    try:
        number = int(tokens[1])
    except ValueError:
        return None

    return b"".join([
        request[:header.start],
        f"CSeq: {number + 1} ".encode(), tokens[2], b"\r\n",
        f"{auth_header_name}: {auth_value}\r\n".encode(),
        request[header.end:],
    ])

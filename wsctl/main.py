"""Command line entry point."""

import argparse
import asyncio
import logging
import sys
from typing import Callable, Optional, Sequence

from . import __version__
from .config import Settings, get_settings
from .errors import ConfigurationError, WsctlError
from .models import ClientOptions
from .sip.client import ExchangeResult, ResponseManager
from .templates import render_payload
from .transport import WebSocketConnection

logger = logging.getLogger(__name__)

PROG = "wsctl"


def parse_bool(value: str) -> bool:
    """Parse a true|false option value."""
    lowered = value.lower()
    if lowered in ("true", "t", "1", "yes"):
        return True
    if lowered in ("false", "f", "0", "no"):
        return False
    raise argparse.ArgumentTypeError(f"expected true or false, got {value!r}")


class ArgumentParser(argparse.ArgumentParser):
    """Argument parser reporting bad options as configuration errors."""

    def error(self, message):
        self.print_usage(sys.stderr)
        raise ConfigurationError(message)


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    """Build the argument parser with defaults taken from settings."""
    parser = ArgumentParser(
        prog=PROG,
        description=f"{PROG} (v{__version__}): send a templated message over a WebSocket connection",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    def add_flag(*names: str, default: bool, help: str) -> None:
        parser.add_argument(
            *names, type=parse_bool, nargs="?", const=True, default=default,
            metavar="true|false", help=help,
        )

    parser.add_argument("-u", "--url", default=settings.url, help="websocket url (ws://... or wss://...)")
    parser.add_argument("-o", "--origin", default=settings.origin, help="origin http url")
    parser.add_argument("-p", "--proto", default=settings.proto, help="websocket sub-protocol")
    add_flag("-i", "--insecure", default=settings.insecure, help="skip tls certificate validation for wss")
    add_flag("-r", "--receive", default=settings.receive, help="wait to receive response from ws server")
    parser.add_argument("-t", "--template", default=settings.template, help="path to template file (mandatory parameter)")
    parser.add_argument("-f", "--fields", default=settings.fields, help="path to the json fields file")
    add_flag("--crlf", default=settings.crlf, help="replace '\\n' with '\\r\\n' inside the data to be sent")
    parser.add_argument("--auser", default=settings.auth_user, help="username to be used for authentication")
    parser.add_argument("--apasswd", default=settings.auth_password, help="password to be used for authentication")
    parser.add_argument("--timeout-recv", type=int, default=settings.timeout_recv,
                        help="timeout waiting to receive data (milliseconds)")
    parser.add_argument("--timeout-send", type=int, default=settings.timeout_send,
                        help="timeout trying to send data (milliseconds)")
    parser.add_argument("--log-level", default=settings.log_level, help="logging level")
    parser.add_argument("--version", action="store_true", help="print version")
    return parser


def options_from_args(args: argparse.Namespace, settings: Settings) -> ClientOptions:
    """Validated run options from parsed arguments."""
    return ClientOptions.from_settings(
        settings,
        url=args.url,
        origin=args.origin,
        proto=args.proto,
        insecure=args.insecure,
        receive=args.receive,
        template=args.template,
        fields=args.fields,
        crlf=args.crlf,
        auth_user=args.auser,
        auth_password=args.apasswd,
        timeout_recv=args.timeout_recv,
        timeout_send=args.timeout_send,
    )


async def exchange(
    options: ClientOptions,
    payload: bytes,
    on_status: Optional[Callable[[str], None]] = None,
) -> ExchangeResult:
    """Open the connection, run one exchange and close it."""
    async with WebSocketConnection(options) as connection:
        manager = ResponseManager(connection, options, on_status=on_status)
        return await manager.run(payload)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run wsctl and return the process exit status."""
    try:
        settings = get_settings()
        args = build_parser(settings).parse_args(argv)

        if args.version:
            print(f"{PROG} v{__version__}")
            return 1

        logging.basicConfig(
            level=getattr(logging, args.log_level.upper(), logging.WARNING),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

        options = options_from_args(args, settings)
        payload = render_payload(options.template, options.fields, crlf=options.crlf)
        result = asyncio.run(exchange(options, payload, on_status=print))
    except WsctlError as e:
        logger.debug("Run aborted", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1

    logger.info(f"Exchange finished, authenticated={result.authenticated}")
    return 0


def cli() -> None:
    sys.exit(main())

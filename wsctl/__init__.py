"""WebSocket command line tool for sending SIP messages."""

__version__ = "1.0"

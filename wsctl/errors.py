"""Error types raised by wsctl."""


class WsctlError(Exception):
    """Base error for fatal conditions."""
    pass


class ConfigurationError(WsctlError):
    """Bad options, template or fields document; raised before any network I/O."""
    pass


class TemplateError(ConfigurationError):
    """Template or fields document could not be loaded or rendered."""
    pass


class TransportError(WsctlError):
    """Dial, write or read failure on the WebSocket connection."""
    pass

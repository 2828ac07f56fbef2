"""SIP over WebSocket exchange with digest authentication."""

from .client import ResponseManager, ExchangeResult, ExchangeState
from .auth import ChallengeKind

__all__ = ["ResponseManager", "ExchangeResult", "ExchangeState", "ChallengeKind"]

"""Core components: cache, transport, refresh coordination and error mapping."""

from __future__ import annotations

from .cache import MISS, ResponseCache, cache_key
from .errors import ErrorFactory
from .refresh import RefreshCoordinator, RefreshState
from .transport import Outcome, Transport

__all__ = [
    "MISS",
    "ErrorFactory",
    "Outcome",
    "RefreshCoordinator",
    "RefreshState",
    "ResponseCache",
    "Transport",
    "cache_key",
]

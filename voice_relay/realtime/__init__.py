from .relay import RelayHandler
from .bridge import UpstreamBridge
from .events import UpstreamMessage
from .adapter import UpstreamHandle, GeminiLiveClient, UpstreamCallbacks

__all__ = [
    "GeminiLiveClient",
    "RelayHandler",
    "UpstreamBridge",
    "UpstreamCallbacks",
    "UpstreamHandle",
    "UpstreamMessage",
]

"""
Contract between the mirror and the messaging transport.

The transport owns pairing, encryption and the wire protocol; the mirror
only consumes decoded events and calls lookup/send primitives.
"""

from wamirror.transport.base import Transport, load_transport
from wamirror.transport.events import (
    MessageEvent,
    HistorySyncEvent,
    Conversation,
    HistoryMessage,
    OfflineSyncCompleted,
    Connected,
    LoggedOut,
)

__all__ = [
    "Transport",
    "load_transport",
    "MessageEvent",
    "HistorySyncEvent",
    "Conversation",
    "HistoryMessage",
    "OfflineSyncCompleted",
    "Connected",
    "LoggedOut",
]

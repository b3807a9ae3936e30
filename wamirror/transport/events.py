"""
Decoded inbound events delivered by the transport.

The set is closed: the ingestion pipeline routes each type through an
explicit handler table and ignores anything else.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from wamirror.core.models import MediaInfo


@dataclass
class MessageEvent:
    """
    A single live message.

    Attributes:
        id: Message id, unique within its chat
        chat: Chat identifier (individual or group)
        sender: Full sender identifier, phone-based or secondary (``@lid``)
        sender_alt: Phone-based identifier for a secondary sender, when known
        push_name: Name the sender set for themselves
        timestamp: Send time
        is_from_me: Sent by the account owner
        text: Text content or caption
        media: Media descriptor, if any
    """
    id: str
    chat: str
    sender: str = ""
    sender_alt: str = ""
    push_name: str = ""
    timestamp: Optional[datetime] = None
    is_from_me: bool = False
    text: str = ""
    media: Optional[MediaInfo] = None


@dataclass
class HistoryMessage:
    """One backlog message inside a history-sync conversation."""
    id: str
    from_me: bool = False
    participant: str = ""
    timestamp: int = 0
    text: str = ""
    media: Optional[MediaInfo] = None


@dataclass
class Conversation:
    """A conversation and its backlog, as delivered by history sync."""
    identifier: str
    name: str = ""
    messages: List[HistoryMessage] = field(default_factory=list)


@dataclass
class HistorySyncEvent:
    """A batch of conversations with overall sync progress (0-100)."""
    conversations: List[Conversation] = field(default_factory=list)
    progress: int = 0


@dataclass
class OfflineSyncCompleted:
    """The server finished draining the offline queue."""
    count: int = 0


@dataclass
class Connected:
    """The transport established a session."""
    pass


@dataclass
class LoggedOut:
    """The linked device was logged out; stored credentials are invalid."""
    reason: str = ""

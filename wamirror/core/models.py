"""
Domain models for the message mirror.

These records describe chats, messages, identity mappings and media
descriptors independent of how the transport or the database encode them.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Dict, Any
from enum import Enum


class MediaType(str, Enum):
    """Media kinds a message can carry."""
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    STICKER = "sticker"


# Filter value matching messages with no media at all
TEXT_ONLY = "text"


@dataclass
class MediaInfo:
    """Media descriptor attached to a message."""
    media_type: str = ""
    filename: str = ""
    url: str = ""
    media_key: Optional[bytes] = None
    file_sha256: Optional[bytes] = None
    file_enc_sha256: Optional[bytes] = None
    file_length: int = 0

    def missing_fields(self) -> List[str]:
        """Names of the fields a download needs that are empty."""
        missing = []
        if not self.media_type:
            missing.append("media_type")
        if not self.url:
            missing.append("url")
        if not self.media_key:
            missing.append("media_key")
        if not self.file_sha256:
            missing.append("file_sha256")
        if not self.file_enc_sha256:
            missing.append("file_enc_sha256")
        if not self.file_length:
            missing.append("file_length")
        return missing

    def is_complete(self) -> bool:
        return not self.missing_fields()


@dataclass
class Chat:
    """A direct or group conversation."""
    identifier: str = ""
    name: Optional[str] = None
    last_message_time: Optional[datetime] = None
    last_message: Optional[str] = None
    last_sender: Optional[str] = None
    last_is_own: Optional[bool] = None

    @property
    def is_group(self) -> bool:
        return self.identifier.endswith("@g.us")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain record for output."""
        return {
            "identifier": self.identifier,
            "name": self.name,
            "is_group": self.is_group,
            "last_message_time": self.last_message_time.isoformat() if self.last_message_time else None,
            "last_message": self.last_message,
            "last_sender": self.last_sender,
            "last_is_own": self.last_is_own,
        }


@dataclass
class Message:
    """A single persisted message."""
    id: str = ""
    chat_identifier: str = ""
    sender: str = ""
    sender_name: str = ""
    content: Optional[str] = None
    timestamp: Optional[datetime] = None
    is_own: bool = False
    media: Optional[MediaInfo] = None
    chat_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain record for output."""
        return {
            "id": self.id,
            "chat_identifier": self.chat_identifier,
            "chat_name": self.chat_name,
            "sender": self.sender,
            "sender_name": self.sender_name or None,
            "content": self.content,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "is_own": self.is_own,
            "media_type": self.media.media_type if self.media and self.media.media_type else None,
            "filename": self.media.filename if self.media and self.media.filename else None,
        }


@dataclass
class IdentityMapping:
    """Best-known phone and name for a secondary identifier."""
    secondary_id: str = ""
    phone: str = ""
    name: str = ""
    updated_at: Optional[datetime] = None


@dataclass
class ContactInfo:
    """Contact directory entry returned by the transport."""
    full_name: str = ""
    business_name: str = ""
    push_name: str = ""

    def display_name(self) -> str:
        """Full name, then business name, then self-reported push name."""
        return self.full_name or self.business_name or self.push_name


@dataclass
class Participant:
    """Group participant as reported by the transport."""
    identifier: str = ""
    secondary_id: str = ""
    phone: str = ""
    display_name: str = ""
    is_admin: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "secondary_id": self.secondary_id or None,
            "phone": self.phone or None,
            "name": self.display_name or None,
            "is_admin": self.is_admin,
        }


@dataclass
class GroupInfo:
    """Group metadata returned by the transport."""
    identifier: str = ""
    name: str = ""
    topic: str = ""
    participants: List[Participant] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain record for output."""
        return {
            "identifier": self.identifier,
            "name": self.name or None,
            "topic": self.topic or None,
            "participants": [p.to_dict() for p in self.participants],
        }


@dataclass
class Contact:
    """An address-book entry listed from the transport directory."""
    identifier: str = ""
    phone: str = ""
    name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "phone": self.phone,
            "name": self.name or None,
        }


@dataclass
class MessageQuery:
    """
    Filters for listing and searching messages.

    ``after``/``before`` are ISO-8601 strings; unparseable bounds are
    dropped rather than failing the query.
    """
    text: str = ""
    chat_identifier: str = ""
    sender: str = ""
    after: str = ""
    before: str = ""
    media_class: str = ""
    limit: int = 50


@dataclass
class SendReceipt:
    """Acknowledgement of a message accepted by the transport."""
    message_id: str = ""
    chat_identifier: str = ""
    timestamp: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message_id": self.message_id,
            "chat_identifier": self.chat_identifier,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


@dataclass
class UploadResult:
    """Result of uploading encrypted media through the transport."""
    url: str = ""
    direct_path: str = ""
    media_key: bytes = b""
    file_sha256: bytes = b""
    file_enc_sha256: bytes = b""
    file_length: int = 0


@dataclass
class QuotedMessage:
    """Reference to the message a reply quotes."""
    message_id: str = ""
    participant: str = ""
    text: str = ""


@dataclass
class Reaction:
    """Emoji reaction targeting a stored message; empty emoji removes it."""
    message_id: str = ""
    chat_identifier: str = ""
    from_me: bool = False
    emoji: str = ""


@dataclass
class OutgoingMessage:
    """
    Payload handed to the transport for delivery.

    Exactly one of text-only, media (``upload`` set) or ``reaction`` is
    meaningful; ``text`` doubles as the caption for media.
    """
    text: str = ""
    quoted: Optional[QuotedMessage] = None
    media_type: str = ""
    upload: Optional[UploadResult] = None
    mimetype: str = ""
    filename: str = ""
    seconds: int = 0
    waveform: bytes = b""
    voice_note: bool = False
    reaction: Optional[Reaction] = None

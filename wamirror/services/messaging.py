"""
Outgoing messaging on top of the transport's send/upload/download primitives.

Replies, forwards and reactions reference messages already mirrored in the
local store; media downloads use the stored descriptor.
"""
import logging
from pathlib import Path
from typing import Optional, Tuple, Union

from wamirror.core.db import MessageStore
from wamirror.core.errors import IncompleteMediaError, NotFoundError, TransportError
from wamirror.core.identifiers import is_group_identifier, parse_recipient, phone_identifier
from wamirror.core.models import (
    MediaType, OutgoingMessage, QuotedMessage, Reaction, SendReceipt,
)
from wamirror.services.audio import analyze_ogg_opus, convert_to_opus_ogg, is_ogg
from wamirror.transport.base import Transport

logger = logging.getLogger(__name__)

OGG_OPUS_MIME = "audio/ogg; codecs=opus"

EXTENSION_TYPES = {
    ".jpg": (MediaType.IMAGE, "image/jpeg"),
    ".jpeg": (MediaType.IMAGE, "image/jpeg"),
    ".png": (MediaType.IMAGE, "image/png"),
    ".gif": (MediaType.IMAGE, "image/gif"),
    ".webp": (MediaType.IMAGE, "image/webp"),
    ".mp4": (MediaType.VIDEO, "video/mp4"),
    ".avi": (MediaType.VIDEO, "video/avi"),
    ".mov": (MediaType.VIDEO, "video/quicktime"),
    ".ogg": (MediaType.AUDIO, OGG_OPUS_MIME),
    ".opus": (MediaType.AUDIO, "audio/opus"),
    ".mp3": (MediaType.AUDIO, "audio/mpeg"),
    ".m4a": (MediaType.AUDIO, "audio/mp4"),
    ".wav": (MediaType.AUDIO, "audio/wav"),
}

QUOTED_MEDIA_LABELS = {
    MediaType.IMAGE.value: "Photo",
    MediaType.VIDEO.value: "Video",
    MediaType.AUDIO.value: "Audio",
    MediaType.DOCUMENT.value: "Document",
}


def classify(path: Union[str, Path]) -> Tuple[MediaType, str]:
    """Media type and MIME type from the file extension (document by default)."""
    return EXTENSION_TYPES.get(Path(path).suffix.lower(),
                               (MediaType.DOCUMENT, "application/octet-stream"))


class MessagingService:
    """
    Sends messages and fetches media through a connected transport.
    """

    def __init__(self, store: MessageStore, transport: Transport):
        """
        Initialize messaging service.

        Parameters
        ----
        store : MessageStore
            Store used to look up referenced messages
        transport : Transport
            Connected transport
        """
        self.store = store
        self.transport = transport

    def send_text(self, recipient: str, text: str, reply_to: Optional[str] = None) -> SendReceipt:
        """
        Send a text message, optionally quoting a stored message.

        Parameters
        ----
        recipient : str
            Chat identifier or bare phone number
        text : str
            Message text
        reply_to : str, optional
            Id of a message in the recipient chat to quote

        Returns
        ----
        SendReceipt
            Transport acknowledgement

        Raises
        ---
        ValueError
            If the recipient is malformed
        NotFoundError
            If ``reply_to`` is not in the local store
        """
        self._require_connected()
        chat = str(parse_recipient(recipient))
        message = OutgoingMessage(text=text)
        if reply_to:
            message.quoted = self._build_quote(reply_to, chat)

        receipt = self.transport.send_message(chat, message)
        logger.info("Sent message %s to %s", receipt.message_id, chat)
        return receipt

    def send_media(self, recipient: str, path: Union[str, Path], caption: str = "",
                   reply_to: Optional[str] = None) -> SendReceipt:
        """
        Upload a file and send it as image, video, audio or document.

        Audio is sent as a voice note; non-Ogg audio is converted to
        Ogg/Opus first.
        """
        self._require_connected()
        chat = str(parse_recipient(recipient))
        path = Path(path)
        media_type, mimetype = classify(path)

        message = OutgoingMessage(
            text=caption,
            media_type=media_type.value,
            mimetype=mimetype,
            filename=path.name,
        )
        if reply_to:
            message.quoted = self._build_quote(reply_to, chat)

        if media_type == MediaType.AUDIO:
            converted = None
            source = path
            if not is_ogg(path):
                converted = convert_to_opus_ogg(path)
                source = converted
                message.mimetype = OGG_OPUS_MIME
            try:
                data = source.read_bytes()
            finally:
                if converted is not None:
                    converted.unlink(missing_ok=True)

            message.seconds, message.waveform = analyze_ogg_opus(data)
            message.voice_note = True
            message.text = ""
        else:
            data = path.read_bytes()

        message.upload = self.transport.upload(data, media_type.value)
        receipt = self.transport.send_message(chat, message)
        logger.info("Sent %s %s to %s", media_type.value, receipt.message_id, chat)
        return receipt

    def forward(self, recipient: str, message_id: str, from_chat: str) -> SendReceipt:
        """
        Forward a stored text message.

        Raises
        ---
        NotFoundError
            If the message is not stored
        ValueError
            If the message carries media
        """
        original = self.store.get_message(message_id, from_chat)
        if original is None:
            raise NotFoundError(f"message {message_id} not found in {from_chat}")
        if original.media is not None:
            raise ValueError("forwarding media messages is not supported")

        self._require_connected()
        chat = str(parse_recipient(recipient))
        receipt = self.transport.send_message(chat, OutgoingMessage(text=original.content or ""))
        logger.info("Forwarded %s to %s", message_id, chat)
        return receipt

    def react(self, chat: str, message_id: str, emoji: str, remove: bool = False) -> SendReceipt:
        """React to a stored message; ``remove`` clears an earlier reaction."""
        self._require_connected()
        chat_identifier = str(parse_recipient(chat))
        target = self.store.get_message(message_id, chat_identifier)
        if target is None:
            raise NotFoundError(f"message {message_id} not found in {chat_identifier}")

        reaction = Reaction(
            message_id=message_id,
            chat_identifier=chat_identifier,
            from_me=target.is_own,
            emoji="" if remove else emoji,
        )
        return self.transport.send_message(chat_identifier, OutgoingMessage(reaction=reaction))

    def download_media(self, message_id: str, chat: str, media_dir: Union[str, Path]) -> Path:
        """
        Download a stored message's media into ``media_dir/<chat>/``.

        Returns
        ----
        Path
            Absolute path of the written file

        Raises
        ---
        NotFoundError
            If the message is not stored
        IncompleteMediaError
            If the stored descriptor lacks fields needed for download
        """
        message = self.store.get_message(message_id, chat)
        if message is None:
            raise NotFoundError(f"message {message_id} not found in {chat}")
        if message.media is None:
            raise IncompleteMediaError(message_id, ["media_type"])

        missing = message.media.missing_fields()
        if missing:
            raise IncompleteMediaError(message_id, missing)

        data = self.transport.download(message.media)

        out_dir = Path(media_dir) / chat.replace(":", "_")
        out_dir.mkdir(parents=True, exist_ok=True)
        filename = message.media.filename or f"{message_id}.{message.media.media_type}"
        out = out_dir / Path(filename).name
        out.write_bytes(data)

        logger.info("Downloaded %s media to %s", message.media.media_type, out)
        return out.resolve()

    def _build_quote(self, message_id: str, chat: str) -> QuotedMessage:
        original = self.store.get_message(message_id, chat)
        if original is None:
            raise NotFoundError(f"quoted message {message_id} not found in {chat}")

        participant = ""
        if is_group_identifier(chat):
            sender = original.sender
            participant = sender if "@" in sender else phone_identifier(sender)

        if original.media is not None:
            text = QUOTED_MEDIA_LABELS.get(original.media.media_type, "Media")
        else:
            text = original.content or ""

        return QuotedMessage(message_id=message_id, participant=participant, text=text)

    def _require_connected(self):
        if not self.transport.is_connected():
            raise TransportError("not connected")

"""
Identity resolution: turning identifiers into human-readable names.

Names come from four sources, ranked: stored identity mappings, existing
chat names, the transport's contact/group directory, and the push name a
sender embeds in their messages. Resolution is best-effort; a directory
failure never fails ingestion.
"""
import logging
import sqlite3
from typing import Iterable, Optional

from wamirror.core.db import MessageStore
from wamirror.core.errors import TransportError
from wamirror.core.identifiers import Identifier, local_part, phone_identifier
from wamirror.core.models import Participant
from wamirror.transport.base import Transport

logger = logging.getLogger(__name__)


def group_placeholder(user: str) -> str:
    return f"Group {user}"


class IdentityResolver:
    """
    Resolves display names for senders and chats.

    The transport is optional; without one only locally stored names are
    used.
    """

    def __init__(self, store: MessageStore, transport: Optional[Transport] = None):
        """
        Initialize resolver.

        Parameters
        ----
        store : MessageStore
            Store holding chats and identity mappings
        transport : Transport, optional
            Directory for contact and group lookups
        """
        self.store = store
        self.transport = transport

    def directory_name(self, identifier: str) -> str:
        """
        Look an identifier up in the transport directory.

        Groups resolve to their subject (and their participant list is
        recorded as identity mappings); individuals resolve to full name,
        then business name, then push name.

        Returns
        ----
        str
            The name, or "" if the directory has nothing (or fails)
        """
        if self.transport is None:
            return ""

        try:
            parsed = Identifier.parse(identifier)
        except ValueError:
            return ""

        try:
            if parsed.is_group:
                info = self.transport.get_group_info(str(parsed))
                if info is None:
                    return ""
                self.record_participants(info.participants)
                return info.name or ""

            contact = self.transport.get_contact(str(parsed.to_non_device()))
            return contact.display_name() if contact else ""
        except TransportError as e:
            logger.debug("Directory lookup failed for %s: %s", identifier, e)
            return ""

    def preferred_name(self, identifier: str) -> str:
        """Directory name, else a placeholder derived from the identifier."""
        name = self.directory_name(identifier)
        if name:
            return name

        try:
            parsed = Identifier.parse(identifier)
        except ValueError:
            return local_part(identifier)
        if parsed.is_group:
            return group_placeholder(parsed.user)
        return parsed.user

    def resolve_sender_name(self, sender_user: str, sender_identifier: str = "",
                            push_name: str = "") -> str:
        """
        Resolve a message sender to a display name.

        Parameters
        ----
        sender_user : str
            User part of the sender identifier
        sender_identifier : str
            Full sender identifier as delivered (may be secondary)
        push_name : str
            Self-reported name carried by the message

        Returns
        ----
        str
            Best available name, or "" if no source knows the sender
        """
        if not sender_user:
            return push_name or ""

        stored = self.store.lookup_sender_name(sender_user)
        if stored and stored != sender_user:
            return stored

        phone_id = phone_identifier(sender_user)

        if sender_identifier:
            name = self.directory_name(sender_identifier)
            if name:
                return name

        if sender_identifier != phone_id:
            name = self.directory_name(phone_id)
            if name:
                return name

        return push_name or ""

    def chat_display_name(self, identifier: str, hint: str = "") -> str:
        """
        Name for a chat being created or refreshed.

        Order: stored non-empty name, directory, ``hint`` (the history-sync
        conversation name), then the placeholder for groups or the
        identifier's local part.
        """
        stored = self.store.get_chat_name(identifier)
        if stored:
            return stored

        name = self.directory_name(identifier)
        if name:
            return name

        if hint:
            return hint
        if identifier.endswith("@g.us"):
            return group_placeholder(local_part(identifier))
        return local_part(identifier)

    def record_identity(self, secondary_id: str, phone: str = "", name: str = ""):
        """Merge what is known about a secondary identifier."""
        if not secondary_id:
            return
        self.store.store_identity_mapping(secondary_id, phone=phone, name=name)

    def record_participants(self, participants: Iterable[Participant]) -> int:
        """
        Store identity mappings for group participants with a secondary id.

        Returns
        ----
        int
            Number of mappings written
        """
        recorded = 0
        for participant in participants:
            if not participant.secondary_id:
                continue
            secondary = local_part(participant.secondary_id)
            phone = local_part(participant.phone) if participant.phone else ""
            self.record_identity(secondary, phone=phone, name=participant.display_name)
            recorded += 1
        return recorded

    def backfill_chat_names(self) -> int:
        """
        Upgrade chats whose name is empty or a placeholder.

        A chat is only rewritten when the directory returns a non-empty name
        that differs from the stored one.

        Returns
        ----
        int
            Number of chats renamed
        """
        updated = 0
        for identifier, name in self.store.list_chat_names():
            if not _is_unresolved(identifier, name):
                continue

            resolved = self.directory_name(identifier)
            if not resolved or resolved == name:
                continue

            try:
                self.store.update_chat_name(identifier, resolved)
            except sqlite3.Error as e:
                logger.warning("Backfill: failed to rename %s: %s", identifier, e)
                continue
            updated += 1

        if updated:
            logger.info("Backfill: updated %d chat names", updated)
        return updated


def _is_unresolved(identifier: str, name: str) -> bool:
    if not name:
        return True
    user = local_part(identifier)
    if name in (user, identifier):
        return True
    if identifier.endswith("@g.us") and name == group_placeholder(user):
        return True
    return name.endswith("@s.whatsapp.net")

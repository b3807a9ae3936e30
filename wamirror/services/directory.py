"""
Contact and group directory lookups.

Contacts and group metadata come from the live transport. The group list
itself is read from the local mirror, since every group with history
already has a chat row.
"""
import logging
from dataclasses import replace
from typing import List, Optional

from wamirror.core.db import MessageStore
from wamirror.core.errors import NotFoundError, QueryError
from wamirror.core.identifiers import Identifier, local_part, phone_identifier
from wamirror.core.models import Chat, Contact, GroupInfo
from wamirror.services.identity import IdentityResolver
from wamirror.transport.base import Transport

logger = logging.getLogger(__name__)


class DirectoryService:
    """
    Lists contacts and groups and fetches group details.
    """

    def __init__(self, store: MessageStore, transport: Optional[Transport],
                 resolver: Optional[IdentityResolver] = None):
        """
        Initialize directory service.

        Parameters
        ----
        store : MessageStore
            Store holding chats and identity mappings
        transport : Transport, optional
            Connected transport serving the directory; only the group list
            works without one
        resolver : IdentityResolver, optional
            Shared resolver; one is created over ``store`` and ``transport``
            if omitted
        """
        self.store = store
        self.transport = transport
        self.resolver = resolver or IdentityResolver(store, transport)

    def list_contacts(self, query: str = "") -> List[Contact]:
        """
        List address-book contacts, sorted by name.

        Parameters
        ----
        query : str
            Case-insensitive substring of the name, or a substring of the
            phone number

        Returns
        ----
        List[Contact]
            Matching contacts

        Raises
        ---
        TransportError
            If the transport cannot serve its contact list
        """
        needle = query.strip().lower()
        contacts = []
        for identifier, info in self.transport.list_contacts().items():
            phone = local_part(identifier)
            name = info.display_name() if info else ""
            if needle and needle not in name.lower() and needle not in phone:
                continue
            contacts.append(Contact(identifier=identifier, phone=phone, name=name))

        contacts.sort(key=lambda c: (not c.name, c.name.lower(), c.phone))
        logger.debug("Listed %d contacts (query=%r)", len(contacts), query)
        return contacts

    def list_groups(self, limit: int = 100) -> List[Chat]:
        """Group chats known to the mirror, most recently active first."""
        return self.store.list_chats(only_groups=True, limit=limit)

    def group_info(self, identifier: str) -> GroupInfo:
        """
        Fetch a group's metadata and participants.

        Participant names are filled from the contact directory where
        possible, and every participant with a secondary id is recorded as
        an identity mapping.

        Parameters
        ----
        identifier : str
            Group identifier (``...@g.us``)

        Returns
        ----
        GroupInfo
            Group with resolved participant names

        Raises
        ---
        QueryError
            If the identifier is not a group identifier
        NotFoundError
            If the transport does not know the group
        TransportError
            If the lookup fails
        """
        try:
            parsed = Identifier.parse(identifier)
        except ValueError as e:
            raise QueryError(f"Invalid group identifier {identifier!r}: {e}") from e
        if not parsed.is_group:
            raise QueryError(f"Not a group identifier: {identifier}")

        info = self.transport.get_group_info(str(parsed))
        if info is None:
            raise NotFoundError(f"Group not found: {identifier}")

        participants = []
        for participant in info.participants:
            lookup = participant.phone or participant.identifier
            name = ""
            if lookup:
                name = self.resolver.directory_name(
                    lookup if "@" in lookup else phone_identifier(lookup)
                )
            participants.append(replace(participant, display_name=name or participant.display_name))

        recorded = self.resolver.record_participants(participants)
        if recorded:
            logger.debug("Recorded %d identity mappings from %s", recorded, parsed)

        return replace(info, identifier=info.identifier or str(parsed), participants=participants)

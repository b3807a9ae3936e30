"""
Search service for querying mirrored chats and messages.

Wraps the store's read-side queries and resolves named timeframe presets
(``today``, ``last_week`` ...) into explicit time bounds.
"""
import logging
from dataclasses import replace
from typing import List, Optional

from wamirror.core.db import MessageStore
from wamirror.core.models import Chat, Message, MessageQuery
from wamirror.core import timeutil

logger = logging.getLogger(__name__)


class ChatSearchService:
    """
    Provides listing and full-text search over the mirror.
    """

    def __init__(self, store: MessageStore):
        """
        Initialize search service.

        Parameters
        ----
        store : MessageStore
            Store instance
        """
        self.store = store

    def list_chats(self, query: str = "", only_groups: bool = False, limit: int = 50) -> List[Chat]:
        return self.store.list_chats(query=query, only_groups=only_groups, limit=limit)

    def list_messages(self, query: MessageQuery, timeframe: Optional[str] = None) -> List[Message]:
        """
        List messages matching filters, newest first.

        Parameters
        ----
        query : MessageQuery
            Filters; ``text`` is ignored
        timeframe : str, optional
            Preset overriding ``after``/``before``

        Raises
        ---
        QueryError
            If the timeframe preset is unknown
        """
        return self.store.list_messages(self._apply_timeframe(query, timeframe))

    def search(self, query: MessageQuery, timeframe: Optional[str] = None) -> List[Message]:
        """
        Full-text search over message content.

        Parameters
        ----
        query : MessageQuery
            ``text`` supports FTS5 syntax
        timeframe : str, optional
            Preset overriding ``after``/``before``

        Returns
        ----
        List[Message]
            Matching messages, newest first

        Raises
        ---
        QueryError
            If the search text is invalid or the timeframe is unknown
        """
        return self.store.search_messages(self._apply_timeframe(query, timeframe))

    def _apply_timeframe(self, query: MessageQuery, timeframe: Optional[str]) -> MessageQuery:
        if not timeframe:
            return query
        after, before = timeutil.parse_timeframe(timeframe)
        logger.debug("Timeframe %s -> %s .. %s", timeframe, after, before)
        return replace(query, after=after, before=before)

"""
Export service for writing a chat's messages to JSON or CSV.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from wamirror.core.db import MessageStore
from wamirror.core.errors import NotFoundError
from wamirror.core.models import MessageQuery

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "id", "chat_identifier", "chat_name", "sender", "sender_name",
    "content", "timestamp", "is_own", "media_type", "filename",
]


class ChatExporter:
    """
    Exports chats to JSON or CSV.
    """

    def __init__(self, store: MessageStore):
        """
        Initialize exporter.

        Parameters
        ----
        store : MessageStore
            Store instance
        """
        self.store = store

    def chat_records(self, chat_identifier: str, limit: int = 0) -> List[Dict[str, Any]]:
        """
        Messages of a chat as plain records, oldest first.

        Raises
        ---
        NotFoundError
            If the chat does not exist
        """
        if self.store.get_chat_name(chat_identifier) is None:
            raise NotFoundError(f"chat {chat_identifier} not found")

        messages = self.store.list_messages(MessageQuery(chat_identifier=chat_identifier, limit=limit))
        return [m.to_dict() for m in reversed(messages)]

    def export_chat_json(self, chat_identifier: str, output_path: Path) -> int:
        """
        Export a chat to a JSON file.

        Returns
        ----
        int
            Number of messages written
        """
        records = self.chat_records(chat_identifier)
        chat = self.store.get_chat(chat_identifier)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump({
                "chat": chat.to_dict() if chat else {"identifier": chat_identifier},
                "messages": records,
            }, f, indent=2, ensure_ascii=False)

        logger.info("Exported %d messages from %s to %s", len(records), chat_identifier, output_path)
        return len(records)

    def export_chat_csv(self, chat_identifier: str, output_path: Path) -> int:
        """
        Export a chat to a CSV file, one row per message.

        Returns
        ----
        int
            Number of messages written
        """
        records = self.chat_records(chat_identifier)
        df = pd.DataFrame(records, columns=EXPORT_COLUMNS)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(output_path, index=False)

        logger.info("Exported %d messages from %s to %s", len(records), chat_identifier, output_path)
        return len(records)

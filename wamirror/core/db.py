"""
Database layer for the message mirror.

Provides a SQLite store with an FTS5 full-text index over message content.
All access goes through a single connection guarded by one lock, so writes
from transport callbacks and reads from the CLI never interleave.
"""
import sqlite3
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional, Tuple, Union
from datetime import datetime

from wamirror.core.errors import CapabilityError, ConfigurationError, QueryError
from wamirror.core.identifiers import phone_identifier
from wamirror.core.models import (
    Chat, Message, MediaInfo, IdentityMapping, MessageQuery, MediaType, TEXT_ONLY,
)
from wamirror.core import timeutil

logger = logging.getLogger(__name__)

LAST_SYNC_KEY = "last_sync"

MESSAGE_COLUMNS = """
    m.id, m.chat_identifier, m.sender,
    COALESCE(NULLIF(m.sender_name, ''), l.name) AS sender_name,
    m.content, m.timestamp, m.is_own,
    m.media_type, m.filename, c.name AS chat_name
"""


class MessageStore:
    """
    SQLite store for chats, messages and identity mappings.

    Opening the store establishes the schema and full-text index
    idempotently, so it is safe to construct on every process start.
    """

    def __init__(self, db_path: Union[str, Path]):
        """
        Open (and if needed create) the database.

        Parameters
        ----
        db_path : str or Path
            Path to the database file. Parent directories are created.

        Raises
        ---
        ConfigurationError
            If the directory cannot be created or the file cannot be opened
        CapabilityError
            If the SQLite build lacks FTS5
        """
        self.db_path = Path(db_path)
        self.conn = None
        self._lock = threading.RLock()
        self._ensure_schema()

    def _connect(self):
        try:
            self.db_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"Cannot create database directory {self.db_path.parent}: {e}") from e

        try:
            self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        except sqlite3.Error as e:
            raise ConfigurationError(f"Cannot open database {self.db_path}: {e}") from e

        self.conn.row_factory = sqlite3.Row

    def _ensure_schema(self):
        """Create tables, the FTS index and its triggers if they don't exist."""
        self._connect()

        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")

            # WAL lets a reader process open the file while a sync is writing
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.fetchone()

            try:
                self._create_tables(cursor)
                self._create_search_index(cursor)
                self.conn.commit()
            except Exception:
                self.conn.rollback()
                self.conn.close()
                self.conn = None
                raise

        logger.debug("Database schema initialized at %s", self.db_path)

    def _create_tables(self, cursor):
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS chats (
                identifier TEXT PRIMARY KEY,
                name TEXT,
                last_message_time TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id TEXT NOT NULL,
                chat_identifier TEXT NOT NULL,
                sender TEXT,
                sender_name TEXT,
                content TEXT,
                timestamp TEXT,
                is_own INTEGER DEFAULT 0,
                media_type TEXT,
                filename TEXT,
                remote_locator TEXT,
                media_key BLOB,
                content_hash BLOB,
                encrypted_content_hash BLOB,
                byte_length INTEGER,
                PRIMARY KEY (id, chat_identifier),
                FOREIGN KEY (chat_identifier) REFERENCES chats(identifier)
            )
        """)

        # Migration: databases created before sender names were resolved
        cursor.execute("PRAGMA table_info(messages)")
        columns = [row[1] for row in cursor.fetchall()]
        if 'sender_name' not in columns:
            cursor.execute("ALTER TABLE messages ADD COLUMN sender_name TEXT")
            logger.info("Added sender_name column to messages table")

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS identity_mappings (
                secondary_id TEXT PRIMARY KEY,
                phone TEXT,
                name TEXT,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS sync_state (
                key TEXT PRIMARY KEY,
                value TEXT
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_messages_chat ON messages(chat_identifier)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_messages_timestamp ON messages(timestamp)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_messages_sender ON messages(sender)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_chats_last_message ON chats(last_message_time)")

    def _create_search_index(self, cursor):
        """
        Create the FTS5 table and the triggers that keep it in sync.

        Rebuilds the index once when it is added to a database that already
        holds messages.
        """
        cursor.execute(
            "SELECT COUNT(*) FROM sqlite_master WHERE type = 'table' AND name = 'messages_fts'"
        )
        existed = cursor.fetchone()[0] > 0

        try:
            cursor.execute("""
                CREATE VIRTUAL TABLE IF NOT EXISTS messages_fts USING fts5(
                    content,
                    content='messages',
                    content_rowid='rowid'
                )
            """)
        except sqlite3.OperationalError as e:
            text = str(e).lower()
            if "fts5" in text or "no such module" in text:
                raise CapabilityError(
                    "FTS5",
                    "SQLite FTS5 is not available. Use a Python build whose sqlite3 "
                    "module is compiled with SQLITE_ENABLE_FTS5."
                ) from e
            raise

        cursor.execute("""
            CREATE TRIGGER IF NOT EXISTS messages_ai AFTER INSERT ON messages BEGIN
                INSERT INTO messages_fts(rowid, content)
                VALUES (new.rowid, new.content);
            END
        """)

        cursor.execute("""
            CREATE TRIGGER IF NOT EXISTS messages_ad AFTER DELETE ON messages BEGIN
                INSERT INTO messages_fts(messages_fts, rowid, content)
                VALUES ('delete', old.rowid, old.content);
            END
        """)

        cursor.execute("""
            CREATE TRIGGER IF NOT EXISTS messages_au AFTER UPDATE ON messages BEGIN
                INSERT INTO messages_fts(messages_fts, rowid, content)
                VALUES ('delete', old.rowid, old.content);
                INSERT INTO messages_fts(rowid, content)
                VALUES (new.rowid, new.content);
            END
        """)

        if not existed:
            cursor.execute("SELECT COUNT(*) FROM messages")
            message_count = cursor.fetchone()[0]
            if message_count > 0:
                logger.info("Rebuilding search index for %d messages...", message_count)
                cursor.execute("INSERT INTO messages_fts(messages_fts) VALUES ('rebuild')")

    def rebuild_search_index(self):
        """Rebuild the full-text index from message content."""
        with self._write() as cursor:
            cursor.execute("INSERT INTO messages_fts(messages_fts) VALUES ('rebuild')")

    @contextmanager
    def _write(self):
        """Serialize a mutation: hold the lock, commit on success, roll back on error."""
        with self._lock:
            cursor = self.conn.cursor()
            try:
                yield cursor
                self.conn.commit()
            except Exception:
                self.conn.rollback()
                raise

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    def upsert_chat(self, identifier: str, name: str = "",
                    last_message_time: Optional[datetime] = None):
        """
        Create a chat or advance an existing one.

        The stored name is only filled when currently empty, and
        ``last_message_time`` only moves forward.

        Parameters
        ----
        identifier : str
            Chat identifier
        name : str
            Resolved display name for a new chat
        last_message_time : datetime, optional
            Timestamp of the message that referenced this chat
        """
        with self._write() as cursor:
            cursor.execute("""
                INSERT INTO chats (identifier, name, last_message_time)
                VALUES (?, ?, ?)
                ON CONFLICT(identifier) DO UPDATE SET
                    name = CASE
                        WHEN COALESCE(chats.name, '') = '' THEN excluded.name
                        ELSE chats.name
                    END,
                    last_message_time = CASE
                        WHEN excluded.last_message_time IS NOT NULL
                             AND (chats.last_message_time IS NULL
                                  OR excluded.last_message_time > chats.last_message_time)
                        THEN excluded.last_message_time
                        ELSE chats.last_message_time
                    END
            """, (identifier, name or "", timeutil.to_db(last_message_time)))

    def ensure_chat(self, identifier: str, name: str = "") -> bool:
        """
        Make sure a chat row exists, filling an empty name when possible.

        Returns
        ----
        bool
            True if a new row was created
        """
        with self._write() as cursor:
            cursor.execute("INSERT OR IGNORE INTO chats (identifier, name) VALUES (?, ?)",
                           (identifier, name or ""))
            created = cursor.rowcount > 0
            if not created and name:
                cursor.execute("""
                    UPDATE chats SET name = ?
                    WHERE identifier = ? AND COALESCE(name, '') = ''
                """, (name, identifier))
            return created

    def get_chat_name(self, identifier: str) -> Optional[str]:
        """
        Get the stored name of a chat.

        Returns
        ----
        str, optional
            The name ("" if the row has none), or None if the chat doesn't exist
        """
        with self._lock:
            row = self.conn.execute(
                "SELECT COALESCE(name, '') FROM chats WHERE identifier = ?", (identifier,)
            ).fetchone()
        return row[0] if row else None

    def update_chat_name(self, identifier: str, name: str):
        with self._write() as cursor:
            cursor.execute("UPDATE chats SET name = ? WHERE identifier = ?", (name, identifier))

    def list_chat_names(self) -> List[Tuple[str, str]]:
        """All ``(identifier, name)`` pairs, name coalesced to ""."""
        with self._lock:
            rows = self.conn.execute(
                "SELECT identifier, COALESCE(name, '') FROM chats ORDER BY identifier"
            ).fetchall()
        return [(row[0], row[1]) for row in rows]

    def get_chat(self, identifier: str) -> Optional[Chat]:
        with self._lock:
            row = self.conn.execute(
                "SELECT identifier, name, last_message_time FROM chats WHERE identifier = ?",
                (identifier,)
            ).fetchone()
        if not row:
            return None
        return Chat(
            identifier=row[0],
            name=row[1] or None,
            last_message_time=timeutil.from_db(row[2]),
        )

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def upsert_message(self, message: Message):
        """
        Insert a message or fully overwrite the row with the same key.

        Every column takes the incoming value (last write wins). The
        conflict path is an UPDATE so the FTS update trigger fires.

        Parameters
        ----
        message : Message
            Message to store; its chat row must already exist
        """
        media = message.media or MediaInfo()
        with self._write() as cursor:
            cursor.execute("""
                INSERT INTO messages (
                    id, chat_identifier, sender, sender_name, content, timestamp, is_own,
                    media_type, filename, remote_locator, media_key, content_hash,
                    encrypted_content_hash, byte_length
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id, chat_identifier) DO UPDATE SET
                    sender = excluded.sender,
                    sender_name = excluded.sender_name,
                    content = excluded.content,
                    timestamp = excluded.timestamp,
                    is_own = excluded.is_own,
                    media_type = excluded.media_type,
                    filename = excluded.filename,
                    remote_locator = excluded.remote_locator,
                    media_key = excluded.media_key,
                    content_hash = excluded.content_hash,
                    encrypted_content_hash = excluded.encrypted_content_hash,
                    byte_length = excluded.byte_length
            """, (
                message.id,
                message.chat_identifier,
                message.sender,
                message.sender_name,
                message.content,
                timeutil.to_db(message.timestamp),
                1 if message.is_own else 0,
                media.media_type,
                media.filename,
                media.url,
                media.media_key,
                media.file_sha256,
                media.file_enc_sha256,
                media.file_length,
            ))

    def get_message(self, message_id: str, chat_identifier: str) -> Optional[Message]:
        """
        Get one message including its full media descriptor.

        Returns
        ----
        Message, optional
            The message, or None if not stored
        """
        with self._lock:
            row = self.conn.execute("""
                SELECT id, chat_identifier, sender, sender_name, content, timestamp, is_own,
                       media_type, filename, remote_locator, media_key, content_hash,
                       encrypted_content_hash, byte_length
                FROM messages
                WHERE id = ? AND chat_identifier = ?
            """, (message_id, chat_identifier)).fetchone()

        if not row:
            return None

        media = None
        if row["media_type"]:
            media = MediaInfo(
                media_type=row["media_type"],
                filename=row["filename"] or "",
                url=row["remote_locator"] or "",
                media_key=row["media_key"],
                file_sha256=row["content_hash"],
                file_enc_sha256=row["encrypted_content_hash"],
                file_length=row["byte_length"] or 0,
            )

        return Message(
            id=row["id"],
            chat_identifier=row["chat_identifier"],
            sender=row["sender"] or "",
            sender_name=row["sender_name"] or "",
            content=row["content"],
            timestamp=timeutil.from_db(row["timestamp"]),
            is_own=bool(row["is_own"]),
            media=media,
        )

    def delete_message(self, message_id: str, chat_identifier: str) -> bool:
        """Delete a message; returns True if a row was removed."""
        with self._write() as cursor:
            cursor.execute("DELETE FROM messages WHERE id = ? AND chat_identifier = ?",
                           (message_id, chat_identifier))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Identity mappings
    # ------------------------------------------------------------------

    def store_identity_mapping(self, secondary_id: str, phone: str = "", name: str = ""):
        """
        Upsert a secondary-id mapping, merging per field.

        Empty incoming values never erase known data.
        """
        with self._write() as cursor:
            cursor.execute("""
                INSERT INTO identity_mappings (secondary_id, phone, name, updated_at)
                VALUES (?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(secondary_id) DO UPDATE SET
                    phone = COALESCE(NULLIF(excluded.phone, ''), identity_mappings.phone),
                    name = COALESCE(NULLIF(excluded.name, ''), identity_mappings.name),
                    updated_at = CURRENT_TIMESTAMP
            """, (secondary_id, phone or "", name or ""))

    def get_identity_mapping(self, secondary_id: str) -> Optional[IdentityMapping]:
        with self._lock:
            row = self.conn.execute(
                "SELECT secondary_id, phone, name, updated_at FROM identity_mappings WHERE secondary_id = ?",
                (secondary_id,)
            ).fetchone()
        if not row:
            return None
        return IdentityMapping(
            secondary_id=row[0],
            phone=row[1] or "",
            name=row[2] or "",
            updated_at=_parse_sqlite_timestamp(row[3]),
        )

    def lookup_sender_name(self, sender: str) -> str:
        """
        Resolve a sender from local data only.

        Checks the identity mapping first, then the name of the sender's
        individual chat. Returns "" if neither has a name.
        """
        mapping = self.get_identity_mapping(sender)
        if mapping and mapping.name:
            return mapping.name

        identifier = sender if "@" in sender else phone_identifier(sender)
        return self.get_chat_name(identifier) or ""

    # ------------------------------------------------------------------
    # Sync state
    # ------------------------------------------------------------------

    def get_last_sync_time(self) -> Optional[datetime]:
        """Time of the last sync attempt, or None if never synced."""
        with self._lock:
            row = self.conn.execute(
                "SELECT value FROM sync_state WHERE key = ?", (LAST_SYNC_KEY,)
            ).fetchone()
        if not row:
            return None
        try:
            return timeutil.from_db(row[0])
        except ValueError:
            logger.warning("Ignoring unparseable last sync time: %r", row[0])
            return None

    def set_last_sync_time(self, value: datetime):
        with self._write() as cursor:
            cursor.execute("""
                INSERT INTO sync_state (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """, (LAST_SYNC_KEY, timeutil.to_db(value)))

    # ------------------------------------------------------------------
    # Read-side queries
    # ------------------------------------------------------------------

    def count_chats(self, query: str = "") -> int:
        with self._lock:
            if not query:
                return self.conn.execute("SELECT COUNT(*) FROM chats").fetchone()[0]
            pattern = f"%{query.lower()}%"
            return self.conn.execute(
                "SELECT COUNT(*) FROM chats WHERE LOWER(name) LIKE ? OR identifier LIKE ?",
                (pattern, pattern)
            ).fetchone()[0]

    def count_messages(self) -> int:
        with self._lock:
            return self.conn.execute("SELECT COUNT(*) FROM messages").fetchone()[0]

    def list_chats(self, query: str = "", only_groups: bool = False, limit: int = 50) -> List[Chat]:
        """
        List chats, most recently active first.

        Parameters
        ----
        query : str
            Case-insensitive substring of the name or identifier
        only_groups : bool
            Restrict to group chats
        limit : int
            Maximum number of chats (0 for no limit)

        Returns
        ----
        List[Chat]
            Chats with their latest message summary
        """
        sql = """
            SELECT c.identifier, c.name, c.last_message_time,
                (SELECT content FROM messages WHERE chat_identifier = c.identifier
                 ORDER BY timestamp DESC LIMIT 1) AS last_message,
                (SELECT sender FROM messages WHERE chat_identifier = c.identifier
                 ORDER BY timestamp DESC LIMIT 1) AS last_sender,
                (SELECT is_own FROM messages WHERE chat_identifier = c.identifier
                 ORDER BY timestamp DESC LIMIT 1) AS last_is_own
            FROM chats c
            WHERE 1=1
        """
        params = []

        if query:
            sql += " AND (LOWER(c.name) LIKE ? OR c.identifier LIKE ?)"
            pattern = f"%{query.lower()}%"
            params.extend([pattern, pattern])

        if only_groups:
            sql += " AND c.identifier LIKE '%@g.us'"

        sql += " ORDER BY c.last_message_time IS NULL, c.last_message_time DESC"

        if limit > 0:
            sql += " LIMIT ?"
            params.append(limit)

        with self._lock:
            rows = self.conn.execute(sql, params).fetchall()

        chats = []
        for row in rows:
            try:
                chats.append(Chat(
                    identifier=row[0],
                    name=row[1] or None,
                    last_message_time=timeutil.from_db(row[2]),
                    last_message=row[3],
                    last_sender=row[4],
                    last_is_own=bool(row[5]) if row[5] is not None else None,
                ))
            except (ValueError, TypeError) as e:
                logger.debug("Skipping unreadable chat row %s: %s", row[0], e)
        return chats

    def list_messages(self, query: MessageQuery) -> List[Message]:
        """
        List messages matching filters, newest first.

        Malformed filters are dropped with a warning.
        """
        sql = f"""
            SELECT {MESSAGE_COLUMNS}
            FROM messages m
            LEFT JOIN chats c ON m.chat_identifier = c.identifier
            LEFT JOIN identity_mappings l ON m.sender = l.secondary_id
            WHERE 1=1
        """
        where, params = self._build_filters(query)
        return self._scan_messages(sql + where, params, query.limit)

    def search_messages(self, query: MessageQuery) -> List[Message]:
        """
        Full-text search over message content.

        Parameters
        ----
        query : MessageQuery
            ``text`` is an FTS5 match expression; the remaining fields are
            optional filters

        Returns
        ----
        List[Message]
            Matching messages, newest first

        Raises
        ---
        QueryError
            If the match expression is not valid FTS5 syntax
        """
        sql = f"""
            SELECT {MESSAGE_COLUMNS}
            FROM messages m
            JOIN messages_fts fts ON m.rowid = fts.rowid
            LEFT JOIN chats c ON m.chat_identifier = c.identifier
            LEFT JOIN identity_mappings l ON m.sender = l.secondary_id
            WHERE messages_fts MATCH ?
        """
        where, params = self._build_filters(query)
        try:
            return self._scan_messages(sql + where, [query.text] + params, query.limit)
        except sqlite3.OperationalError as e:
            raise QueryError(f"invalid search query {query.text!r}: {e}") from e

    def _build_filters(self, query: MessageQuery) -> Tuple[str, list]:
        clauses = []
        params = []

        if query.chat_identifier:
            clauses.append("m.chat_identifier = ?")
            params.append(query.chat_identifier)

        if query.sender:
            clauses.append("m.sender = ?")
            params.append(query.sender)

        for bound, op in ((query.after, ">="), (query.before, "<=")):
            if not bound:
                continue
            try:
                clauses.append(f"m.timestamp {op} ?")
                params.append(timeutil.parse_bound(bound))
            except QueryError as e:
                clauses.pop()
                logger.warning("Dropping filter: %s", e)

        if query.media_class:
            try:
                clause, values = _media_class_filter(query.media_class)
                clauses.append(clause)
                params.extend(values)
            except QueryError as e:
                logger.warning("Dropping filter: %s", e)

        where = "".join(f" AND {clause}" for clause in clauses)
        return where, params

    def _scan_messages(self, sql: str, params: list, limit: int) -> List[Message]:
        sql += " ORDER BY m.timestamp DESC"
        if limit and limit > 0:
            sql += " LIMIT ?"
            params = params + [limit]

        with self._lock:
            rows = self.conn.execute(sql, params).fetchall()

        messages = []
        for row in rows:
            try:
                media = None
                if row["media_type"]:
                    media = MediaInfo(media_type=row["media_type"], filename=row["filename"] or "")
                messages.append(Message(
                    id=row["id"],
                    chat_identifier=row["chat_identifier"],
                    sender=row["sender"] or "",
                    sender_name=row["sender_name"] or "",
                    content=row["content"],
                    timestamp=timeutil.from_db(row["timestamp"]),
                    is_own=bool(row["is_own"]),
                    media=media,
                    chat_name=row["chat_name"],
                ))
            except (ValueError, TypeError, IndexError) as e:
                logger.debug("Skipping unreadable message row: %s", e)
        return messages

    def close(self):
        """Close database connection."""
        with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


def _media_class_filter(media_class: str) -> Tuple[str, list]:
    if media_class == TEXT_ONLY:
        return "(m.media_type IS NULL OR m.media_type = '')", []
    try:
        return "m.media_type = ?", [MediaType(media_class).value]
    except ValueError:
        raise QueryError(f"unknown message type filter: {media_class!r}")


def _parse_sqlite_timestamp(value: Optional[str]) -> Optional[datetime]:
    # CURRENT_TIMESTAMP is "YYYY-MM-DD HH:MM:SS" in UTC
    if not value:
        return None
    try:
        return timeutil.from_db(value.replace(" ", "T"))
    except ValueError:
        return None


def fts5_available() -> bool:
    """True if the running SQLite build can create FTS5 tables."""
    conn = sqlite3.connect(":memory:")
    try:
        conn.execute("CREATE VIRTUAL TABLE fts_check USING fts5(content)")
        return True
    except sqlite3.OperationalError:
        return False
    finally:
        conn.close()

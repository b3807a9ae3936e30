"""
Abstract transport and the loader for configured implementations.
"""
import importlib
import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from wamirror.core.config import MirrorConfig
from wamirror.core.errors import ConfigurationError
from wamirror.core.models import (
    ContactInfo, GroupInfo, MediaInfo, OutgoingMessage, SendReceipt, UploadResult,
)

logger = logging.getLogger(__name__)

EventHandler = Callable[[object], None]


class Transport(ABC):
    """
    Messaging transport collaborator.

    Implementations are constructed with the runtime ``MirrorConfig`` (so
    they can place their session database under ``config.session_db_path``)
    and raise ``TransportError`` when connecting or sending fails.
    """

    def __init__(self, config: MirrorConfig):
        self.config = config

    @abstractmethod
    def connect(self):
        """Open a session using stored credentials."""

    @abstractmethod
    def disconnect(self):
        """Close the session; safe to call when not connected."""

    @abstractmethod
    def is_connected(self) -> bool:
        pass

    @abstractmethod
    def is_authenticated(self) -> bool:
        """True if credentials from a previous pairing are stored."""

    @abstractmethod
    def own_user(self) -> str:
        """User part of the account owner's identifier ("" if unknown)."""

    @abstractmethod
    def set_event_handler(self, handler: EventHandler):
        """Register the callback receiving decoded events."""

    @abstractmethod
    def get_contact(self, identifier: str) -> Optional[ContactInfo]:
        pass

    @abstractmethod
    def list_contacts(self) -> Dict[str, ContactInfo]:
        """Address book keyed by phone-based identifier."""

    @abstractmethod
    def get_group_info(self, identifier: str) -> Optional[GroupInfo]:
        pass

    @abstractmethod
    def upload(self, data: bytes, media_type: str) -> UploadResult:
        """Encrypt and upload media, returning its descriptor."""

    @abstractmethod
    def download(self, media: MediaInfo) -> bytes:
        """Fetch and decrypt media described by a complete descriptor."""

    @abstractmethod
    def send_message(self, recipient: str, message: OutgoingMessage) -> SendReceipt:
        pass


def load_transport(path: str, config: MirrorConfig) -> Transport:
    """
    Instantiate the transport named by a ``module:Class`` import path.

    Parameters
    ----
    path : str
        Import path, e.g. ``mypackage.transport:WhatsAppTransport``
    config : MirrorConfig
        Passed to the transport constructor

    Returns
    ----
    Transport
        The constructed transport

    Raises
    ---
    ConfigurationError
        If the path is malformed, cannot be imported, or does not name a
        Transport subclass
    """
    module_name, sep, class_name = path.partition(":")
    if not sep or not module_name or not class_name:
        raise ConfigurationError(f"Transport must be given as module:Class, got {path!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import transport module {module_name}: {e}") from e

    cls = getattr(module, class_name, None)
    if cls is None:
        raise ConfigurationError(f"Module {module_name} has no attribute {class_name}")
    if not (isinstance(cls, type) and issubclass(cls, Transport)):
        raise ConfigurationError(f"{path} is not a Transport implementation")

    logger.debug("Loading transport %s", path)
    return cls(config)

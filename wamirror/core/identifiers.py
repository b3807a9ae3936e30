"""
Chat identifier parsing.

Identifiers have the form ``user[:device]@server``. The server decides what
kind of address it is: ``s.whatsapp.net`` for a phone-based individual,
``g.us`` for a group and ``lid`` for a secondary (privacy-preserving) id.
"""
from dataclasses import dataclass

USER_SERVER = "s.whatsapp.net"
GROUP_SERVER = "g.us"
SECONDARY_SERVER = "lid"


@dataclass(frozen=True)
class Identifier:
    """A parsed chat or sender identifier."""
    user: str
    server: str = USER_SERVER
    device: int = 0

    @classmethod
    def parse(cls, raw: str) -> "Identifier":
        """
        Parse an identifier string.

        Parameters
        ----
        raw : str
            ``user@server`` or ``user:device@server``. A bare user part
            is treated as a phone-based identifier.

        Returns
        ----
        Identifier
            Parsed identifier

        Raises
        ---
        ValueError
            If the string is empty or has an empty user/server part
        """
        if not raw or not raw.strip():
            raise ValueError("empty identifier")

        raw = raw.strip()
        if "@" not in raw:
            return cls(user=raw)

        user, _, server = raw.partition("@")
        if not user or not server or "@" in server:
            raise ValueError(f"malformed identifier: {raw!r}")

        device = 0
        if ":" in user:
            user, _, device_part = user.partition(":")
            try:
                device = int(device_part)
            except ValueError:
                raise ValueError(f"malformed device in identifier: {raw!r}")
            if not user:
                raise ValueError(f"malformed identifier: {raw!r}")

        return cls(user=user, server=server, device=device)

    @property
    def is_group(self) -> bool:
        return self.server == GROUP_SERVER

    @property
    def is_secondary(self) -> bool:
        return self.server == SECONDARY_SERVER

    def to_non_device(self) -> "Identifier":
        return Identifier(user=self.user, server=self.server)

    def __str__(self) -> str:
        return f"{self.user}@{self.server}"


def phone_identifier(user: str) -> str:
    """Build the phone-based identifier for a user part."""
    return str(Identifier(user=user, server=USER_SERVER))


def local_part(raw: str) -> str:
    """Return the text before the domain suffix (the whole string if none)."""
    idx = raw.find("@")
    if idx > 0:
        return raw[:idx]
    return raw


def normalize_user(raw: str) -> str:
    """
    Reduce a sender pseudo-identifier to its plain user part.

    ``123:4@s.whatsapp.net`` and ``123@s.whatsapp.net`` both become
    ``123``; strings without a server are returned unchanged.
    """
    if "@" not in raw:
        return raw
    try:
        return Identifier.parse(raw).user
    except ValueError:
        return local_part(raw)


def is_group_identifier(raw: str) -> bool:
    return raw.endswith("@" + GROUP_SERVER)


def parse_recipient(recipient: str) -> Identifier:
    """Parse a recipient given either as an identifier or a bare phone number."""
    if "@" in recipient:
        return Identifier.parse(recipient)
    return Identifier(user=recipient.lstrip("+"), server=USER_SERVER)

"""
Type-safe wrappers for Discord identifiers.

Snowflakes are 64-bit integers but are persisted and compared as strings so
that database rows, dictionary keys and API values all agree on one form.
The core modules take these wrappers (or plain ints) instead of SDK objects.
"""

from __future__ import annotations

from typing import Union


class Snowflake:
    """
    Base wrapper for a Discord snowflake ID.

    Attributes:
        _value (str): The snowflake ID stored as a canonical decimal string.

    Example:
        >>> uid = UserID(123456789012345678)
        >>> uid.to_int()
        123456789012345678
        >>> str(uid)
        '123456789012345678'
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, int, "Snowflake"]) -> None:
        """
        Initialize from a string, int, or another wrapper of the same kind.

        Raises:
            ValueError: If the value cannot be converted to a valid snowflake.
        """
        if isinstance(value, Snowflake):
            self._value = value._value
        elif isinstance(value, bool):
            raise ValueError(f"Cannot create {type(self).__name__} from bool: {value}")
        elif isinstance(value, int):
            self._value = str(value)
        elif isinstance(value, str):
            self._value = str(int(value.strip()))
        else:
            raise ValueError(f"Cannot create {type(self).__name__} from {type(value).__name__}: {value}")

    @classmethod
    def from_int(cls, value: int):
        return cls(value)

    def to_int(self) -> int:
        """Convert to an integer for Discord API calls."""
        return int(self._value)

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, type(self)):
            return self._value == other._value
        if isinstance(other, str):
            return self._value == other
        if isinstance(other, int) and not isinstance(other, bool):
            return self._value == str(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)


class UserID(Snowflake):
    """Snowflake of a Discord user (subjects and moderators alike)."""

    __slots__ = ()

    @classmethod
    def from_user(cls, member) -> "UserID":
        """Create a UserID from a Discord Member or User object."""
        return cls(member.id)


class GuildID(Snowflake):
    """Snowflake of a Discord guild."""

    __slots__ = ()

    @classmethod
    def from_guild(cls, guild) -> "GuildID":
        """Create a GuildID from a Discord Guild object."""
        return cls(guild.id)


class ChannelID(Snowflake):
    """Snowflake of a Discord channel."""

    __slots__ = ()

    @classmethod
    def from_channel(cls, channel) -> "ChannelID":
        """Create a ChannelID from any Discord channel object."""
        return cls(channel.id)

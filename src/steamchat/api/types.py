"""Domain structures produced by the Steam API engine."""

from __future__ import annotations

import enum
import random
from dataclasses import dataclass, field
from typing import Optional

from steamchat.api.auth import SteamAuth
from steamchat.utils.steam_ids import profile_url


class MessageType(enum.Enum):
    SAYTEXT = "saytext"
    EMOTE = "emote"
    LEFT_CONV = "leftconversation"
    RELATIONSHIP = "personarelationship"
    STATE = "personastate"
    TYPING = "typing"

    @classmethod
    def from_str(cls, value: Optional[str]) -> Optional["MessageType"]:
        """Case-insensitive lookup; unknown types map to None."""

        if not value:
            return None
        folded = value.casefold()
        for member in cls:
            if member.value == folded:
                return member
        return None


class FriendRelation(enum.IntEnum):
    NONE = 0
    FRIEND = 1
    IGNORE = 2


class FriendAction(enum.IntEnum):
    """Relationship codes carried by ``personarelationship`` messages."""

    NONE = 0
    BLOCKED = 1
    REQUEST = 2
    ADD = 3
    REQUESTED = 4
    IGNORED = 5
    IGNORED_FRIEND = 6

    @classmethod
    def from_int(cls, value: Optional[int]) -> "FriendAction":
        try:
            return cls(value or 0)
        except ValueError:
            return cls.NONE


class PersonaState(enum.IntEnum):
    OFFLINE = 0
    ONLINE = 1
    BUSY = 2
    AWAY = 3
    SNOOZE = 4
    LOOKING_TO_TRADE = 5
    LOOKING_TO_PLAY = 6


@dataclass(eq=False)
class FriendSummary:
    """Profile summary of a friend or contact.

    Compared by identity: the same steamid can have several live summaries
    (one per result list) that are enriched independently.
    """

    steamid: str
    nick: Optional[str] = None
    fullname: Optional[str] = None
    game: Optional[str] = None
    server: Optional[str] = None
    state: int = 0
    relation: FriendRelation = FriendRelation.NONE
    action: FriendAction = FriendAction.NONE

    @property
    def profile_url(self) -> str:
        return profile_url(self.steamid)

    @property
    def persona_state(self) -> Optional[PersonaState]:
        try:
            return PersonaState(self.state)
        except ValueError:
            return None


@dataclass
class ApiMessage:
    """A chat message or presence event from polling or the chat log."""

    type: MessageType
    summary: FriendSummary
    text: Optional[str] = None
    tstamp: int = 0

    @classmethod
    def for_sender(cls, steamid: str, type: MessageType = MessageType.SAYTEXT) -> "ApiMessage":
        return cls(type=type, summary=FriendSummary(steamid))


def _random_umqid() -> str:
    return str(random.getrandbits(32))


@dataclass
class Session:
    """Identity and cursors of one authenticated web-chat connection."""

    umqid: str = field(default_factory=_random_umqid)
    sessid: Optional[str] = None
    token: Optional[str] = None
    steamid: Optional[str] = None
    lmid: int = 0
    tstamp: int = 0
    auth: Optional[SteamAuth] = None

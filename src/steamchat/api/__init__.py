from steamchat.api.auth import SteamAuth
from steamchat.api.calls import ApiCall, ApiFlags, ApiType, CallbackKind
from steamchat.api.client import SessionState, SteamApi
from steamchat.api.errors import ErrorKind, SteamApiError
from steamchat.api.types import (
    ApiMessage,
    FriendAction,
    FriendRelation,
    FriendSummary,
    MessageType,
    PersonaState,
    Session,
)

__all__ = [
    "ApiCall",
    "ApiFlags",
    "ApiMessage",
    "ApiType",
    "CallbackKind",
    "ErrorKind",
    "FriendAction",
    "FriendRelation",
    "FriendSummary",
    "MessageType",
    "PersonaState",
    "Session",
    "SessionState",
    "SteamApi",
    "SteamApiError",
    "SteamAuth",
]

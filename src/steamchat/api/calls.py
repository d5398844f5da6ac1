"""Call types, their registry entries and the per-call context."""

from __future__ import annotations

import asyncio
import enum
import weakref
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from steamchat.api.errors import ErrorKind, SteamApiError
from steamchat.api.types import FriendSummary
from steamchat.utils.http import HttpRequest


CLIENT_ID = "DE45CD61"
OAUTH_SCOPE = "read_profile write_profile read_client write_client"

PATH_FRIEND_SEARCH = "/ISteamUserOAuth/Search/v0001"
PATH_FRIENDS = "/ISteamUserOAuth/GetFriendList/v0001"
PATH_SUMMARIES = "/ISteamUserOAuth/GetUserSummaries/v0001"
PATH_LOGON = "/ISteamWebUserPresenceOAuth/Logon/v0001"
PATH_LOGOFF = "/ISteamWebUserPresenceOAuth/Logoff/v0001"
PATH_MESSAGE = "/ISteamWebUserPresenceOAuth/Message/v0001"
PATH_POLL = "/ISteamWebUserPresenceOAuth/Poll/v0001"

COM_PATH_AUTH = "/mobilelogin/dologin/"
COM_PATH_AUTH_RDIR = "/mobileloginsucceeded/"
COM_PATH_CHATLOG = "/chat/chatlog/"
COM_PATH_FRIEND_ADD = "/actions/AddFriendAjax/"
COM_PATH_FRIEND_REMOVE = "/actions/RemoveFriendAjax/"
COM_PATH_KEY = "/mobilelogin/getrsakey/"
COM_PATH_PROFILE = "/profiles/"

# Most ids the summaries endpoint accepts in one request
SUMMARIES_MAX = 100


class ApiType(enum.Enum):
    AUTH = "auth"
    AUTH_RDIR = "auth_rdir"
    CHATLOG = "chatlog"
    FRIEND_ACCEPT = "friend_accept"
    FRIEND_ADD = "friend_add"
    FRIEND_IGNORE = "friend_ignore"
    FRIEND_REMOVE = "friend_remove"
    FRIEND_SEARCH = "friend_search"
    FRIENDS = "friends"
    KEY = "key"
    LOGON = "logon"
    RELOGON = "relogon"
    LOGOFF = "logoff"
    MESSAGE = "message"
    POLL = "poll"
    SUMMARY = "summary"


class ApiFlags(enum.IntFlag):
    NONE = 0
    # Do not invoke the callback after this response
    NOCALL = enum.auto()
    # Keep the call alive after this response (a follow-up request is pending)
    NOFREE = enum.auto()
    # Do not decode the response body as JSON
    NOJSON = enum.auto()


class CallbackKind(enum.Enum):
    """Callback signature families.

    PLAIN:   callback(api, error)
    ID:      callback(api, steamid, error)
    LIST:    callback(api, items, error)
    SUMMARY: callback(api, summary, error)
    """

    PLAIN = "plain"
    ID = "id"
    LIST = "list"
    SUMMARY = "summary"


@dataclass(frozen=True)
class CallSpec:
    label: str
    kind: CallbackKind


CALL_SPECS: Dict[ApiType, CallSpec] = {
    ApiType.AUTH: CallSpec("Authentication", CallbackKind.PLAIN),
    ApiType.AUTH_RDIR: CallSpec("Authentication (redirect)", CallbackKind.PLAIN),
    ApiType.CHATLOG: CallSpec("ChatLog", CallbackKind.LIST),
    ApiType.FRIEND_ACCEPT: CallSpec("Friend Acceptance", CallbackKind.ID),
    ApiType.FRIEND_ADD: CallSpec("Friend Addition", CallbackKind.ID),
    ApiType.FRIEND_IGNORE: CallSpec("Friend Ignore", CallbackKind.ID),
    ApiType.FRIEND_REMOVE: CallSpec("Friend Removal", CallbackKind.ID),
    ApiType.FRIEND_SEARCH: CallSpec("Friend Search", CallbackKind.LIST),
    ApiType.FRIENDS: CallSpec("Friends", CallbackKind.LIST),
    ApiType.KEY: CallSpec("Key", CallbackKind.PLAIN),
    ApiType.LOGON: CallSpec("Logon", CallbackKind.PLAIN),
    ApiType.RELOGON: CallSpec("Relogon", CallbackKind.PLAIN),
    ApiType.LOGOFF: CallSpec("Logoff", CallbackKind.PLAIN),
    ApiType.MESSAGE: CallSpec("Message", CallbackKind.PLAIN),
    ApiType.POLL: CallSpec("Polling", CallbackKind.LIST),
    ApiType.SUMMARY: CallSpec("Summary", CallbackKind.SUMMARY),
}


ApiCallback = Callable[..., Any]


class ApiCall:
    """Bookkeeping for one API operation, from send to callback.

    Holds the typed callback, the accumulated result and at most one error
    (the first one set wins). ``pending`` maps steamids to weak references of
    summaries that still need enrichment; the summaries themselves are owned
    by ``result``.
    """

    def __init__(self, type: ApiType, callback: Optional[ApiCallback] = None) -> None:
        self.type = type
        self.callback = callback
        self.result: Any = None
        self.error: Optional[SteamApiError] = None
        self.flags = ApiFlags.NONE
        self.request: Optional[HttpRequest] = None
        # Run once with the call when it is released
        self.cleanup: Optional[Callable[["ApiCall"], None]] = None

        self.pending: Dict[str, List[weakref.ref[FriendSummary]]] = {}
        self.batch: List[str] = []
        self.attempts: Dict[str, int] = {}

        self.finished = False
        self.released = False
        self._waiter: Optional[asyncio.Future] = None

    def __repr__(self) -> str:
        state = "finished" if self.finished else "open"
        return f"<ApiCall {self.type.value} {state}>"

    @property
    def spec(self) -> CallSpec:
        return CALL_SPECS[self.type]

    @property
    def label(self) -> str:
        return self.spec.label

    def set_error(self, kind: ErrorKind, message: str) -> bool:
        """Record an error unless one is already set. Returns True if recorded."""

        return self.adopt_error(SteamApiError(kind, message))

    def adopt_error(self, error: SteamApiError) -> bool:
        if self.error is not None:
            return False
        self.error = error
        return True

    def finish(self) -> None:
        """Mark the call complete and wake anything awaiting it."""

        self.finished = True
        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_result(None)

    def release(self) -> None:
        """Detach the transport request and drop enrichment bookkeeping."""

        if self.released:
            return
        self.released = True
        if self.request is not None:
            self.request.close()
            self.request = None
        self.pending.clear()
        self.batch = []
        self.attempts.clear()

        if self.cleanup is not None:
            cleanup, self.cleanup = self.cleanup, None
            try:
                cleanup(self)
            except Exception:  # noqa: BLE001
                logger.exception("Cleanup hook failed for {}", self)

    async def wait(self) -> Any:
        """Wait for completion; return the result or raise the call's error."""

        if not self.finished:
            if self._waiter is None:
                self._waiter = asyncio.get_running_loop().create_future()
            await self._waiter
        if self.error is not None:
            raise self.error
        return self.result

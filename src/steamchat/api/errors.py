"""Error types surfaced to API callbacks."""

from __future__ import annotations

import enum


class ErrorKind(enum.Enum):
    PARSER = "parser"
    AUTH = "auth"
    AUTH_CAPTCHA = "auth_captcha"
    AUTH_GUARD = "auth_guard"
    LOGON_EXPIRED = "logon_expired"
    KEY = "key"
    LOGON = "logon"
    RELOGON = "relogon"
    LOGOFF = "logoff"
    MESSAGE = "message"
    POLL = "poll"
    POLL_TIMEOUT = "poll_timeout"
    FRIEND_ACCEPT = "friend_accept"
    FRIEND_ADD = "friend_add"
    FRIEND_REMOVE = "friend_remove"
    TRANSPORT = "transport"


class SteamApiError(RuntimeError):
    """Raised (or passed to a callback) when an API call fails."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"SteamApiError({self.kind.name}, {self.message!r})"

    def prefix(self, label: str) -> None:
        """Prepend ``"<label>: "`` to the message."""

        self.message = f"{label}: {self.message}"
        self.args = (self.message,)

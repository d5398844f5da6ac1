"""Steam web-chat API engine."""

from __future__ import annotations

import enum
import time
from typing import Any, Dict, List, Optional

from loguru import logger

from steamchat.api.calls import (
    CLIENT_ID,
    COM_PATH_AUTH,
    COM_PATH_AUTH_RDIR,
    COM_PATH_CHATLOG,
    COM_PATH_FRIEND_ADD,
    COM_PATH_FRIEND_REMOVE,
    COM_PATH_KEY,
    COM_PATH_PROFILE,
    OAUTH_SCOPE,
    PATH_FRIEND_SEARCH,
    PATH_FRIENDS,
    PATH_LOGOFF,
    PATH_LOGON,
    PATH_MESSAGE,
    PATH_POLL,
    PATH_SUMMARIES,
    ApiCall,
    ApiCallback,
    ApiFlags,
    ApiType,
    CallbackKind,
)
from steamchat.api.errors import ErrorKind, SteamApiError
from steamchat.api.parsers import PARSERS
from steamchat.api.summaries import SummaryBatcher
from steamchat.api.types import ApiMessage, MessageType, Session
from steamchat.utils import json_tree
from steamchat.utils.config import POLL_TIMEOUT, ApiConfig
from steamchat.utils.http import HttpClient, HttpFlags, HttpRequest
from steamchat.utils.json_tree import JsonTreeError
from steamchat.utils.steam_ids import accountid_from_steamid


class SessionState(enum.Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    PAUSED = "paused"
    RELOGIN_SENT = "relogin_sent"


def _donotcache() -> str:
    return str(int(time.time() * 1000))


class SteamApi:
    """Non-blocking client for the Steam community web-chat endpoints.

    Every operation builds an :class:`ApiCall`, hands its request to the
    transport and returns the call right away. The typed callback fires once
    the response has been parsed and every profile summary it references has
    been enriched; ``await call.wait()`` gives the same outcome to async code.

    All methods must be called from the event loop the transport runs on.
    """

    def __init__(
        self,
        config: Optional[ApiConfig] = None,
        *,
        umqid: Optional[str] = None,
        http: Optional[HttpClient] = None,
    ) -> None:
        self.config = config or ApiConfig()
        self.http = http or HttpClient(self.config.user_agent, timeout=self.config.http_timeout)

        umqid = umqid or self.config.umqid
        self.session = Session(umqid=umqid) if umqid else Session()
        self.summaries = SummaryBatcher()
        self.state = SessionState.ACTIVE

        # Callback for relogons issued automatically after a session expiry
        self.on_relogon: Optional[ApiCallback] = None
        self._expired: List[ApiCall] = []

    async def __aenter__(self) -> "SteamApi":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the transport; calls still in flight never complete."""

        self.summaries.clear()
        await self.http.aclose()

    def refresh(self) -> None:
        """Load the session's login cookies into the transport's cookie jar."""

        cookies: Dict[str, Optional[str]] = {}
        if self.session.steamid and self.session.token:
            cookies["steamLogin"] = f"{self.session.steamid}||oauth:{self.session.token}"
        if self.session.sessid:
            cookies["sessionid"] = self.session.sessid
        self.http.set_cookies(cookies)

    # ------------------------------------------------------------------
    # Call lifecycle
    # ------------------------------------------------------------------

    def _request(
        self,
        call: ApiCall,
        host: str,
        path: str,
        *,
        flags: HttpFlags = HttpFlags.NONE,
    ) -> HttpRequest:
        req = self.http.request(
            host,
            path,
            lambda completed: self._dispatch(call, completed),
            flags=HttpFlags.SSL | flags,
        )
        call.request = req
        return req

    def _send(self, call: ApiCall, *, force: bool = False) -> ApiCall:
        logger.debug("Sending {} call: {}", call.label, call.request)
        self.http.send(call.request, force=force)
        return call

    def _fail_now(self, call: ApiCall, kind: ErrorKind, message: str) -> ApiCall:
        call.set_error(kind, message)
        call.error.prefix(call.label)
        self._invoke(call)
        self._release(call)
        return call

    def _invoke(self, call: ApiCall) -> None:
        """Finish the call and route it to its callback's signature."""

        kind = call.spec.kind
        if kind is CallbackKind.LIST and call.result is None:
            call.result = []
        call.finish()

        if call.error is not None:
            logger.debug("{} failed: {}", call.label, call.error)
        if call.callback is None:
            return

        try:
            if kind is CallbackKind.PLAIN:
                call.callback(self, call.error)
            else:
                # ID, LIST and SUMMARY callbacks all take the payload first
                call.callback(self, call.result, call.error)
        except Exception:  # noqa: BLE001
            logger.exception("Unhandled error in {} callback", call.label)

    def _release(self, call: ApiCall) -> None:
        """Release ``call``, withdrawing a request it still has parked."""

        if call.pending:
            self.summaries.forget(call)
        if call.request is not None:
            self.http.cancel(call.request)
        call.release()

    def _complete(self, call: ApiCall) -> None:
        self._invoke(call)
        self._release(call)

    def _dispatch(self, call: ApiCall, req: HttpRequest) -> None:
        """Handle one transport completion for ``call``."""

        if call.finished or req is not call.request:
            logger.debug("Ignoring stale response for {}", call)
            return

        data: Any = None
        if req.error is not None:
            error = SteamApiError(ErrorKind.TRANSPORT, str(req.error))
            error.__cause__ = req.error
            call.adopt_error(error)
        elif not call.flags & ApiFlags.NOJSON:
            try:
                data = json_tree.loads(req.body)
            except JsonTreeError as exc:
                call.set_error(ErrorKind.PARSER, str(exc))

        resolved: List[ApiCall] = []
        if call.error is None:
            if not call.pending:
                PARSERS[call.type](self, call, data)
                if call.pending and call.error is None:
                    self._request_summaries(call)
            elif data is not None:
                resolved = self.summaries.reconcile(call, data)
                if call.pending:
                    self._request_summaries(call)

        if call.error is not None:
            if call.pending:
                self.summaries.forget(call)
            if call.type is ApiType.RELOGON:
                self.relogon_failed(call)
            call.error.prefix(call.label)

        if not call.flags & ApiFlags.NOCALL:
            self._invoke(call)

        if req.flags & HttpFlags.NOFREE:
            call.flags |= ApiFlags.NOFREE

        if not call.flags & ApiFlags.NOFREE:
            self._release(call)
        else:
            call.flags &= ~(ApiFlags.NOCALL | ApiFlags.NOFREE)
            call.error = None

        for other in resolved:
            self._complete(other)

    # ------------------------------------------------------------------
    # Hooks used by the response parsers
    # ------------------------------------------------------------------

    def auth_redirect(self, call: ApiCall, params: Dict[str, str]) -> None:
        """Continue a successful login on the redirect endpoint, same call."""

        call.type = ApiType.AUTH_RDIR
        call.flags |= ApiFlags.NOCALL | ApiFlags.NOFREE | ApiFlags.NOJSON
        req = self._request(call, self.config.com_host, COM_PATH_AUTH_RDIR, flags=HttpFlags.POST)
        req.set_params(params)
        self._send(call)

    def expire_session(self, call: ApiCall) -> None:
        """Park ``call`` for resending and relogon with the cached token."""

        call.set_error(ErrorKind.LOGON_EXPIRED, "Logon session expired")
        call.flags |= ApiFlags.NOCALL | ApiFlags.NOFREE

        if self.state is not SessionState.RELOGIN_SENT:
            self.state = SessionState.EXPIRED
            logger.info("Logon session expired; pausing requests")

        self.http.pause(True)
        if self.state is SessionState.EXPIRED:
            self.state = SessionState.PAUSED

        self.http.resend(call.request)
        self._expired.append(call)

        if self.state is SessionState.PAUSED:
            self.relogon(self.on_relogon)

    def resume_session(self) -> None:
        if self.state is not SessionState.ACTIVE:
            logger.info("Logon session restored; resuming {} parked request(s)", len(self._expired))
        self.state = SessionState.ACTIVE
        self._expired = []
        self.http.pause(False)

    def relogon_failed(self, call: ApiCall) -> None:
        """Fail every parked call; the queue stays paused until a new logon."""

        self.state = SessionState.PAUSED
        reason = call.error.message if call.error is not None else "Failed to relogon"
        logger.warning("Relogon failed ({}); requests stay paused", reason)

        parked, self._expired = self._expired, []
        for waiting in parked:
            if waiting.finished:
                continue
            if waiting.request is not None:
                self.http.cancel(waiting.request)
            waiting.error = None
            waiting.set_error(ErrorKind.RELOGON, f"Relogon failed: {reason}")
            waiting.error.prefix(waiting.label)
            self._complete(waiting)

    def _request_summaries(self, call: ApiCall) -> None:
        steamids = self.summaries.next_batch(call)
        if not steamids:
            return

        call.flags |= ApiFlags.NOCALL | ApiFlags.NOFREE
        req = self._request(call, self.config.api_host, PATH_SUMMARIES)
        req.set_params(access_token=self.session.token, steamids=",".join(steamids))
        logger.debug("Requesting {} summaries for {}", len(steamids), call)
        self.http.send(req)

    # ------------------------------------------------------------------
    # API Methods
    # ------------------------------------------------------------------

    def key(self, user: str, callback: Optional[ApiCallback] = None) -> ApiCall:
        """Fetch the RSA key used to encrypt ``user``'s password."""

        call = ApiCall(ApiType.KEY, callback)
        req = self._request(call, self.config.com_host, COM_PATH_KEY, flags=HttpFlags.POST)
        req.set_params(username=user, donotcache=_donotcache())
        return self._send(call)

    def auth(
        self,
        user: str,
        password: str,
        callback: Optional[ApiCallback] = None,
        *,
        authcode: Optional[str] = None,
        captcha: Optional[str] = None,
    ) -> ApiCall:
        """Log in with a password; requires a prior :meth:`key` call.

        Args:
            user: Account name
            password: Plain-text password, encrypted with the fetched RSA key
            authcode: Steam Guard code sent by e-mail, when one was requested
            captcha: Captcha answer, when one was requested
        """

        call = ApiCall(ApiType.AUTH, callback)
        auth = self.session.auth
        encrypted = auth.encrypt(password) if auth is not None else None
        if encrypted is None:
            return self._fail_now(call, ErrorKind.AUTH, "Failed to encrypt password")

        req = self._request(call, self.config.com_host, COM_PATH_AUTH, flags=HttpFlags.POST)
        req.set_params(
            {
                "username": user,
                "password": encrypted,
                "emailauth": authcode,
                "emailsteamid": auth.esid,
                "captchagid": auth.cgid,
                "captcha_text": captcha,
                "rsatimestamp": auth.time,
                "oauth_client_id": CLIENT_ID,
                "donotcache": _donotcache(),
                "remember_login": "true",
                "oauth_scope": OAUTH_SCOPE,
            }
        )
        return self._send(call)

    def chatlog(self, steamid: str, callback: Optional[ApiCallback] = None) -> ApiCall:
        """Fetch recent chat history with ``steamid``."""

        path = f"{COM_PATH_CHATLOG}{accountid_from_steamid(steamid)}"
        call = ApiCall(ApiType.CHATLOG, callback)
        req = self._request(call, self.config.com_host, path, flags=HttpFlags.POST)
        req.set_params(sessionid=self.session.sessid)
        return self._send(call)

    def _require_steamid(self) -> str:
        if not self.session.steamid:
            raise ValueError("This operation requires a logged-on session (no steamid yet)")
        return self.session.steamid

    def friend_accept(
        self,
        steamid: str,
        callback: Optional[ApiCallback] = None,
        *,
        action: str = "accept",
    ) -> ApiCall:
        """Answer a pending friend request (``action`` is "accept" or "ignore")."""

        path = f"{COM_PATH_PROFILE}{self._require_steamid()}/home_process"
        call = ApiCall(ApiType.FRIEND_ACCEPT, callback)
        call.result = steamid
        req = self._request(call, self.config.com_host, path, flags=HttpFlags.POST)
        req.set_params(
            {
                "sessionID": self.session.sessid,
                "id": steamid,
                "perform": action,
                "action": "approvePending",
                "itype": "friend",
                "json": "1",
                "xml": "0",
            }
        )
        return self._send(call)

    def friend_add(self, steamid: str, callback: Optional[ApiCallback] = None) -> ApiCall:
        call = ApiCall(ApiType.FRIEND_ADD, callback)
        call.result = steamid
        req = self._request(call, self.config.com_host, COM_PATH_FRIEND_ADD, flags=HttpFlags.POST)
        req.set_params(sessionID=self.session.sessid, steamid=steamid)
        return self._send(call)

    def friend_ignore(
        self,
        steamid: str,
        callback: Optional[ApiCallback] = None,
        *,
        ignore: bool = True,
    ) -> ApiCall:
        path = f"{COM_PATH_PROFILE}{self._require_steamid()}/friends/"
        call = ApiCall(ApiType.FRIEND_IGNORE, callback)
        call.result = steamid
        call.flags |= ApiFlags.NOJSON
        req = self._request(call, self.config.com_host, path, flags=HttpFlags.POST)
        req.set_params(
            {
                "sessionID": self.session.sessid,
                "action": "ignore" if ignore else "unignore",
                f"friends[{steamid}]": "1",
            }
        )
        return self._send(call)

    def friend_remove(self, steamid: str, callback: Optional[ApiCallback] = None) -> ApiCall:
        call = ApiCall(ApiType.FRIEND_REMOVE, callback)
        call.result = steamid
        call.flags |= ApiFlags.NOJSON
        req = self._request(call, self.config.com_host, COM_PATH_FRIEND_REMOVE, flags=HttpFlags.POST)
        req.set_params(sessionID=self.session.sessid, steamid=steamid)
        return self._send(call)

    def friend_search(
        self,
        query: str,
        count: int,
        callback: Optional[ApiCallback] = None,
    ) -> ApiCall:
        """Search users by name; results are not enriched."""

        call = ApiCall(ApiType.FRIEND_SEARCH, callback)
        req = self._request(call, self.config.api_host, PATH_FRIEND_SEARCH)
        req.set_params(
            access_token=self.session.token,
            keywords=f'"{query}"',
            count=int(count),
            offset=0,
            fields="all",
            targets="users",
        )
        return self._send(call)

    def friends(self, callback: Optional[ApiCallback] = None) -> ApiCall:
        """Fetch the friend list with every entry's profile summary filled in."""

        call = ApiCall(ApiType.FRIENDS, callback)
        req = self._request(call, self.config.api_host, PATH_FRIENDS)
        req.set_params(
            access_token=self.session.token,
            steamid=self.session.steamid,
            relationship="friend,ignoredfriend",
        )
        return self._send(call)

    def logoff(self, callback: Optional[ApiCallback] = None) -> ApiCall:
        call = ApiCall(ApiType.LOGOFF, callback)
        req = self._request(call, self.config.api_host, PATH_LOGOFF, flags=HttpFlags.POST)
        req.set_params(access_token=self.session.token, umqid=self.session.umqid)
        return self._send(call)

    def logon(self, callback: Optional[ApiCallback] = None) -> ApiCall:
        """Start a web-presence session; bypasses (and on success lifts) a pause."""

        call = ApiCall(ApiType.LOGON, callback)
        req = self._request(call, self.config.api_host, PATH_LOGON, flags=HttpFlags.POST)
        req.set_params(access_token=self.session.token, umqid=self.session.umqid, ui_mode="web")
        return self._send(call, force=True)

    def relogon(self, callback: Optional[ApiCallback] = None) -> ApiCall:
        """Re-establish the presence session with the cached OAuth token.

        Pauses the request queue until the relogon answers; only this
        request is sent while paused.
        """

        call = ApiCall(ApiType.RELOGON, callback)
        req = self._request(call, self.config.api_host, PATH_LOGON, flags=HttpFlags.POST)
        req.set_params(access_token=self.session.token, umqid=self.session.umqid)

        self.http.pause(True)
        self.state = SessionState.RELOGIN_SENT
        logger.info("Relogon sent")
        return self._send(call, force=True)

    def message(self, message: ApiMessage, callback: Optional[ApiCallback] = None) -> ApiCall:
        """Send a chat message, emote or typing notification.

        Raises:
            ValueError: for message types that cannot be sent
        """

        if message.type not in (MessageType.SAYTEXT, MessageType.EMOTE, MessageType.TYPING):
            raise ValueError(f"Cannot send messages of type {message.type.value!r}")

        call = ApiCall(ApiType.MESSAGE, callback)
        req = self._request(
            call,
            self.config.api_host,
            PATH_MESSAGE,
            flags=HttpFlags.QUEUED | HttpFlags.POST,
        )
        req.set_params(
            access_token=self.session.token,
            umqid=self.session.umqid,
            steamid_dst=message.summary.steamid,
            type=message.type.value,
        )
        if message.type is not MessageType.TYPING:
            req.set_params(text=message.text or "")
        return self._send(call)

    def send_message(
        self,
        type: MessageType,
        steamid: str,
        text: Optional[str] = None,
        callback: Optional[ApiCallback] = None,
    ) -> ApiCall:
        message = ApiMessage.for_sender(steamid, type)
        message.text = text
        return self.message(message, callback)

    def poll(self, callback: Optional[ApiCallback] = None) -> ApiCall:
        """Long-poll for new messages after the current cursor."""

        call = ApiCall(ApiType.POLL, callback)
        req = self._request(call, self.config.api_host, PATH_POLL, flags=HttpFlags.POST)
        req.set_headers(Connection="Keep-Alive")
        req.set_params(
            access_token=self.session.token,
            umqid=self.session.umqid,
            message=self.session.lmid,
            sectimeout=POLL_TIMEOUT,
        )
        return self._send(call)

    def summary(self, steamid: str, callback: Optional[ApiCallback] = None) -> ApiCall:
        call = ApiCall(ApiType.SUMMARY, callback)
        req = self._request(call, self.config.api_host, PATH_SUMMARIES)
        req.set_params(access_token=self.session.token, steamids=steamid)
        return self._send(call)

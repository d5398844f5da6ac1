"""Response parsers, one per call type.

Each parser receives the engine, the call and the decoded JSON document (or
``None`` for calls flagged ``NOJSON``). Parsers store their output on
``call.result`` and report failures through ``call.set_error``; they never
raise for a malformed or partial response.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from loguru import logger

from steamchat.api.auth import SteamAuth
from steamchat.api.calls import ApiCall, ApiType
from steamchat.api.errors import ErrorKind
from steamchat.api.summaries import apply_summary_json
from steamchat.api.types import ApiMessage, FriendAction, FriendRelation, FriendSummary, MessageType
from steamchat.utils import json_tree
from steamchat.utils.config import POLL_TIMEOUT
from steamchat.utils.json_tree import JsonTreeError
from steamchat.utils.steam_ids import accountid_from_steamid, steamid_str

if TYPE_CHECKING:
    from steamchat.api.client import SteamApi


ParseFunc = Callable[["SteamApi", ApiCall, Any], None]

NOT_LOGGED_ON = "Not Logged On"


def _bool2int(body: Optional[str]) -> bool:
    if not body:
        return False
    text = body.strip()
    if text.casefold() in {"true", "yes", "on"}:
        return True
    try:
        return int(text) != 0
    except ValueError:
        return False


def parse_auth(api: "SteamApi", call: ApiCall, data: Any) -> None:
    auth = api.session.auth
    if auth is None:
        auth = api.session.auth = SteamAuth()

    gid = json_tree.get_str(data, "captcha_gid")
    if gid is not None:
        auth.captcha(gid)

    esid = json_tree.get_str(data, "emailsteamid")
    if esid is not None:
        auth.email(esid)

    if not json_tree.get_bool(data, "success"):
        if json_tree.get_bool(data, "emailauth_needed"):
            kind = ErrorKind.AUTH_GUARD
        elif json_tree.get_bool(data, "captcha_needed"):
            kind = ErrorKind.AUTH_CAPTCHA
        else:
            kind = ErrorKind.AUTH
        message = json_tree.get_str(data, "message") or "Failed to authenticate"
        call.set_error(kind, message)
        return

    oauth_text = json_tree.get_str(data, "oauth")
    if oauth_text is None:
        call.set_error(ErrorKind.AUTH, "Failed to obtain OAuth data")
        return

    try:
        oauth = json_tree.loads(oauth_text)
    except JsonTreeError as exc:
        call.set_error(ErrorKind.PARSER, str(exc))
        return

    token = json_tree.get_str(oauth, "oauth_token")
    if token is None:
        call.set_error(ErrorKind.AUTH, "Failed to obtain OAuth token")
        return

    api.session.token = token
    api.auth_redirect(call, json_tree.flatten(oauth))


def parse_auth_rdir(api: "SteamApi", call: ApiCall, data: Any) -> None:
    sessid = api.http.cookies.get("sessionid")
    if not sessid:
        call.set_error(ErrorKind.AUTH, "Failed to obtain OAuth session ID")
        return
    api.session.sessid = sessid


def parse_chatlog(api: "SteamApi", call: ApiCall, data: Any) -> None:
    own_accid: Optional[int] = None
    if api.session.steamid:
        try:
            own_accid = accountid_from_steamid(api.session.steamid)
        except ValueError:
            own_accid = None

    messages: List[ApiMessage] = []
    for entry in data if isinstance(data, list) else []:
        accid = json_tree.get_int(entry, "m_unAccountID")
        if accid is None or accid == own_accid:
            continue

        message = ApiMessage.for_sender(steamid_str(accid), MessageType.SAYTEXT)
        message.text = json_tree.get_str(entry, "m_strMessage")
        message.tstamp = json_tree.get_int(entry, "m_tsTimestamp") or 0
        messages.append(message)

    call.result = messages


def parse_friend_accept(api: "SteamApi", call: ApiCall, data: Any) -> None:
    text = json_tree.get_str(data, "error_text")
    if text is not None:
        call.set_error(ErrorKind.FRIEND_ACCEPT, text)


def parse_friend_add(api: "SteamApi", call: ApiCall, data: Any) -> None:
    failed = json_tree.get_array(data, "failed_invites_result")
    if failed:
        call.set_error(ErrorKind.FRIEND_ADD, "Failed to add friend")


def parse_friend_ignore(api: "SteamApi", call: ApiCall, data: Any) -> None:
    return None


def parse_friend_remove(api: "SteamApi", call: ApiCall, data: Any) -> None:
    body = call.request.body if call.request is not None else None
    if not _bool2int(body):
        call.set_error(ErrorKind.FRIEND_REMOVE, "Failed to remove friend")


def parse_friend_search(api: "SteamApi", call: ApiCall, data: Any) -> None:
    results: List[FriendSummary] = []
    for entry in json_tree.get_array(data, "results") or []:
        is_user, _ = json_tree.str_equals(entry, "type", "user")
        if not is_user:
            continue
        steamid = json_tree.get_str(entry, "steamid")
        if steamid is None:
            continue
        summary = FriendSummary(steamid)
        summary.nick = json_tree.get_str(entry, "matchingtext")
        results.append(summary)

    call.result = results


def parse_friends(api: "SteamApi", call: ApiCall, data: Any) -> None:
    friends: List[FriendSummary] = []
    seen: set[str] = set()

    for entry in json_tree.get_array(data, "friends") or []:
        relationship = json_tree.get_str(entry, "relationship")
        if relationship is None:
            continue
        relationship = relationship.casefold()
        if relationship == "friend":
            relation = FriendRelation.FRIEND
        elif relationship == "ignoredfriend":
            relation = FriendRelation.IGNORE
        else:
            continue

        steamid = json_tree.get_str(entry, "steamid")
        if steamid is None or steamid in seen:
            continue
        seen.add(steamid)

        summary = FriendSummary(steamid, relation=relation)
        friends.append(summary)
        api.summaries.register(call, summary)

    call.result = friends


def parse_key(api: "SteamApi", call: ApiCall, data: Any) -> None:
    failed, _ = json_tree.str_equals(data, "success", "false")
    success = json_tree.get_value(data, "success", bool)
    if failed or success is False:
        call.set_error(ErrorKind.KEY, "Failed to retrieve authentication key")
        return

    auth = api.session.auth if api.session.auth is not None else SteamAuth()

    mod = json_tree.get_str(data, "publickey_mod")
    exp = json_tree.get_str(data, "publickey_exp")
    if mod is None or not auth.set_key_mod(mod) or exp is None or not auth.set_key_exp(exp):
        call.set_error(ErrorKind.KEY, "Failed to retrieve authentication key")
        return

    timestamp = json_tree.get_str(data, "timestamp")
    if timestamp is not None:
        auth.time = timestamp

    api.session.auth = auth


def parse_logon(api: "SteamApi", call: ApiCall, data: Any) -> None:
    ok, status = json_tree.str_equals(data, "error", "OK")
    if not ok:
        call.set_error(ErrorKind.LOGON, status or "Failed to logon")
        return

    session = api.session
    session.lmid = json_tree.get_int(data, "message") or 0
    session.tstamp = json_tree.get_int(data, "utc_timestamp") or 0

    steamid = json_tree.get_str(data, "steamid")
    if steamid is not None:
        session.steamid = steamid

    umqid = json_tree.get_str(data, "umqid")
    if umqid is not None:
        session.umqid = umqid

    api.refresh()
    api.resume_session()


def parse_relogon(api: "SteamApi", call: ApiCall, data: Any) -> None:
    ok, status = json_tree.str_equals(data, "error", "OK")
    if ok:
        api.resume_session()
        return

    # The dispatcher fails the parked calls for any relogon error
    call.set_error(ErrorKind.RELOGON, status or "Failed to relogon")


def parse_logoff(api: "SteamApi", call: ApiCall, data: Any) -> None:
    ok, status = json_tree.str_equals(data, "error", "OK")
    if not ok:
        call.set_error(ErrorKind.LOGOFF, status or "Failed to logoff")


def parse_message(api: "SteamApi", call: ApiCall, data: Any) -> None:
    ok, status = json_tree.str_equals(data, "error", "OK")
    if ok:
        return

    if status is not None and status.casefold() == NOT_LOGGED_ON.casefold():
        api.expire_session(call)
        return

    call.set_error(ErrorKind.MESSAGE, status or "Failed to send message")


def _poll_message(api: "SteamApi", call: ApiCall, entry: Any) -> Optional[ApiMessage]:
    sender = json_tree.get_str(entry, "steamid_from")
    if sender is None or sender == api.session.steamid:
        return None

    mtype = MessageType.from_str(json_tree.get_str(entry, "type"))
    if mtype is None:
        logger.debug("Dropping poll message of unknown type from {}", sender)
        return None

    message = ApiMessage.for_sender(sender, mtype)
    message.tstamp = json_tree.get_int(entry, "utc_timestamp") or 0

    if mtype in (MessageType.SAYTEXT, MessageType.EMOTE):
        message.text = json_tree.get_str(entry, "text")
    elif mtype is MessageType.STATE:
        message.summary.nick = json_tree.get_str(entry, "persona_name")
        api.summaries.register(call, message.summary)
    elif mtype is MessageType.RELATIONSHIP:
        message.summary.action = FriendAction.from_int(json_tree.get_int(entry, "persona_state"))
        api.summaries.register(call, message.summary)

    return message


def parse_poll(api: "SteamApi", call: ApiCall, data: Any) -> None:
    status = json_tree.get_str(data, "error")
    if status is not None and status.casefold() not in {"timeout", "ok"}:
        if status.casefold() == NOT_LOGGED_ON.casefold():
            api.expire_session(call)
            return
        call.set_error(ErrorKind.POLL, status)
        return

    entries = json_tree.get_array(data, "messages") or []

    timeout = json_tree.get_int(data, "sectimeout")
    if timeout is None or (timeout < POLL_TIMEOUT and not entries):
        call.set_error(ErrorKind.POLL_TIMEOUT, f"Timeout of {timeout or 0} too low")
        return

    call.result = []

    lmid = json_tree.get_int(data, "messagelast")
    if lmid is None or lmid == api.session.lmid:
        return

    api.session.lmid = lmid
    messages: List[ApiMessage] = []
    for entry in entries:
        message = _poll_message(api, call, entry)
        if message is not None:
            messages.append(message)

    call.result = messages


def parse_summary(api: "SteamApi", call: ApiCall, data: Any) -> None:
    players = json_tree.get_array(data, "players")
    if not players:
        return

    entry = players[0]
    steamid = json_tree.get_str(entry, "steamid")
    if steamid is None:
        return

    summary = FriendSummary(steamid)
    apply_summary_json(summary, entry)
    call.result = summary


PARSERS: Dict[ApiType, ParseFunc] = {
    ApiType.AUTH: parse_auth,
    ApiType.AUTH_RDIR: parse_auth_rdir,
    ApiType.CHATLOG: parse_chatlog,
    ApiType.FRIEND_ACCEPT: parse_friend_accept,
    ApiType.FRIEND_ADD: parse_friend_add,
    ApiType.FRIEND_IGNORE: parse_friend_ignore,
    ApiType.FRIEND_REMOVE: parse_friend_remove,
    ApiType.FRIEND_SEARCH: parse_friend_search,
    ApiType.FRIENDS: parse_friends,
    ApiType.KEY: parse_key,
    ApiType.LOGOFF: parse_logoff,
    ApiType.LOGON: parse_logon,
    ApiType.RELOGON: parse_relogon,
    ApiType.MESSAGE: parse_message,
    ApiType.POLL: parse_poll,
    ApiType.SUMMARY: parse_summary,
}

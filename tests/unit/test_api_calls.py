"""Tests for the call dispatcher and the smaller typed operations."""

import asyncio

import pytest

from steamchat.api import ApiMessage, ErrorKind, MessageType, SteamApi, SteamApiError
from steamchat.api.calls import (
    COM_PATH_CHATLOG,
    COM_PATH_FRIEND_ADD,
    COM_PATH_FRIEND_REMOVE,
    PATH_FRIEND_SEARCH,
    PATH_MESSAGE,
)
from steamchat.utils.http import HttpFlags, SteamHttpError

OWN = "76561197960287930"
FRIEND = "76561197960265729"


class TestDispatcher:
    def test_transport_error_is_wrapped(self, logged_api, http, recorder):
        logged_api.poll(recorder)
        cause = SteamHttpError("HTTP 502: Bad Gateway", status=502)

        http.respond(http.last, error=cause)

        error = recorder.error
        assert error.kind is ErrorKind.TRANSPORT
        assert str(error) == "Polling: HTTP 502: Bad Gateway"
        assert error.__cause__ is cause

    def test_malformed_json_is_a_parser_error(self, logged_api, http, recorder):
        logged_api.logoff(recorder)
        http.respond(http.last, "{nope")

        assert recorder.error.kind is ErrorKind.PARSER
        assert str(recorder.error).startswith("Logoff: Parser: ")

    def test_callback_runs_once_and_call_is_released(self, logged_api, http, recorder):
        call = logged_api.logoff(recorder)
        req = http.last

        http.respond(req, data={"error": "OK"})

        assert recorder.calls == [(logged_api, None)]
        assert call.finished and call.released
        assert call.request is None
        assert req.closed

    def test_callback_exceptions_are_contained(self, logged_api, http):
        def explode(api, error):
            raise RuntimeError("callback bug")

        call = logged_api.logoff(explode)
        http.respond(http.last, data={"error": "OK"})

        assert call.finished

    def test_cleanup_hook_runs_once_on_release(self, logged_api, http, recorder):
        released = []
        call = logged_api.friends(recorder)
        call.cleanup = lambda c: released.append((c, list(c.result)))

        http.respond(http.last, data={"friends": [{"steamid": FRIEND, "relationship": "friend"}]})
        assert released == []

        http.respond_players(http.last)

        assert recorder.count == 1
        assert len(released) == 1
        assert released[0][0] is call
        assert released[0][1][0].steamid == FRIEND
        assert call.cleanup is None

    def test_calls_without_callback(self, logged_api, http):
        call = logged_api.logoff()
        http.respond(http.last, data={"error": "OK"})
        assert call.finished
        assert call.error is None


@pytest.mark.asyncio
class TestAwaitableCalls:
    async def test_wait_returns_result(self, logged_api, http):
        call = logged_api.summary(FRIEND)
        waiter = asyncio.create_task(call.wait())
        await asyncio.sleep(0)

        http.respond(http.last, data={"players": [{"steamid": FRIEND, "personaname": "Pal"}]})

        summary = await asyncio.wait_for(waiter, timeout=1)
        assert summary.nick == "Pal"

    async def test_wait_raises_call_error(self, logged_api, http):
        call = logged_api.logoff()
        http.respond(http.last, data={"error": "Nope"})

        with pytest.raises(SteamApiError) as exc:
            await call.wait()
        assert exc.value.kind is ErrorKind.LOGOFF
        assert str(exc.value) == "Logoff: Nope"

    async def test_async_context_manager_closes_transport(self, http):
        async with SteamApi(http=http) as api:
            api.session.token = "t"
            http.pause(True)
            api.poll()
            assert len(http.queued) == 1
        assert http.queued == []

    async def test_close_forgets_pending_summaries(self, logged_api, http):
        logged_api.friends()
        http.respond(http.last, data={"friends": [{"steamid": FRIEND, "relationship": "friend"}]})
        assert len(logged_api.summaries.waiting(FRIEND)) == 1

        await logged_api.close()

        assert logged_api.summaries.waiting(FRIEND) == []


class TestMessages:
    def test_saytext_parameters(self, logged_api, http, recorder):
        logged_api.send_message(MessageType.SAYTEXT, FRIEND, "hello", recorder)

        req = http.last
        assert req.path == PATH_MESSAGE
        assert req.method == "POST"
        assert req.flags & HttpFlags.QUEUED
        assert req.params == {
            "access_token": "oauth-token",
            "umqid": "4242",
            "steamid_dst": FRIEND,
            "type": "saytext",
            "text": "hello",
        }

        http.respond(req, data={"error": "OK"})
        assert recorder.calls == [(logged_api, None)]

    def test_typing_has_no_text(self, logged_api, http):
        logged_api.message(ApiMessage.for_sender(FRIEND, MessageType.TYPING))
        assert "text" not in http.last.params
        assert http.last.params["type"] == "typing"

    def test_emote(self, logged_api, http):
        logged_api.send_message(MessageType.EMOTE, FRIEND, "waves")
        assert http.last.params["type"] == "emote"
        assert http.last.params["text"] == "waves"

    @pytest.mark.parametrize("mtype", [MessageType.STATE, MessageType.RELATIONSHIP, MessageType.LEFT_CONV])
    def test_unsendable_types_raise(self, logged_api, http, mtype):
        with pytest.raises(ValueError):
            logged_api.send_message(mtype, FRIEND, "x")
        assert http.sent == []

    def test_messages_are_sent_one_at_a_time(self, logged_api, http):
        logged_api.send_message(MessageType.SAYTEXT, FRIEND, "one")
        logged_api.send_message(MessageType.SAYTEXT, FRIEND, "two")
        assert [req.params["text"] for req in http.sent] == ["one"]

        http.respond(http.last, data={"error": "OK"})
        assert [req.params["text"] for req in http.sent] == ["one", "two"]

    def test_message_error(self, logged_api, http, recorder):
        logged_api.send_message(MessageType.SAYTEXT, FRIEND, "hi", recorder)
        http.respond(http.last, data={"error": "Rate limited"})

        assert recorder.error.kind is ErrorKind.MESSAGE
        assert str(recorder.error) == "Message: Rate limited"


class TestFriendActions:
    def test_friend_add(self, logged_api, http, recorder):
        logged_api.friend_add(FRIEND, recorder)
        req = http.last
        assert req.path == COM_PATH_FRIEND_ADD
        assert req.params == {"sessionID": "sess-1", "steamid": FRIEND}

        http.respond(req, data={"success": 1, "failed_invites_result": []})
        assert recorder.calls == [(logged_api, FRIEND, None)]

    def test_friend_add_failure(self, logged_api, http, recorder):
        logged_api.friend_add(FRIEND, recorder)
        http.respond(http.last, data={"failed_invites_result": [FRIEND]})

        assert recorder.value == FRIEND
        assert recorder.error.kind is ErrorKind.FRIEND_ADD
        assert str(recorder.error) == "Friend Addition: Failed to add friend"

    def test_friend_accept(self, logged_api, http, recorder):
        logged_api.friend_accept(FRIEND, recorder, action="ignore")
        req = http.last
        assert req.path == f"/profiles/{OWN}/home_process"
        assert req.params["id"] == FRIEND
        assert req.params["perform"] == "ignore"
        assert req.params["action"] == "approvePending"

        http.respond(req, data={"error_text": "Too many pending invites"})
        assert str(recorder.error) == "Friend Acceptance: Too many pending invites"

    def test_friend_accept_requires_session(self, api):
        with pytest.raises(ValueError):
            api.friend_accept(FRIEND)

    @pytest.mark.parametrize("body", ["true", "1", " yes "])
    def test_friend_remove_success(self, logged_api, http, recorder, body):
        logged_api.friend_remove(FRIEND, recorder)
        assert http.last.path == COM_PATH_FRIEND_REMOVE

        http.respond(http.last, body)
        assert recorder.calls == [(logged_api, FRIEND, None)]

    @pytest.mark.parametrize("body", ["false", "0", "", "<html>"])
    def test_friend_remove_failure(self, logged_api, http, recorder, body):
        logged_api.friend_remove(FRIEND, recorder)
        http.respond(http.last, body)

        assert recorder.error.kind is ErrorKind.FRIEND_REMOVE
        assert str(recorder.error) == "Friend Removal: Failed to remove friend"

    def test_friend_ignore(self, logged_api, http, recorder):
        logged_api.friend_ignore(FRIEND, recorder, ignore=False)
        req = http.last
        assert req.path == f"/profiles/{OWN}/friends/"
        assert req.params == {"sessionID": "sess-1", "action": "unignore", f"friends[{FRIEND}]": "1"}

        http.respond(req, "<html>not json</html>")
        assert recorder.calls == [(logged_api, FRIEND, None)]

    def test_friend_search(self, logged_api, http, recorder):
        logged_api.friend_search("gabe", 5, recorder)
        req = http.last
        assert req.path == PATH_FRIEND_SEARCH
        assert req.params["keywords"] == '"gabe"'
        assert req.params["count"] == "5"

        http.respond(
            req,
            data={
                "results": [
                    {"type": "user", "steamid": FRIEND, "matchingtext": "Gabe N"},
                    {"type": "group", "steamid": "103582791429521408"},
                    {"type": "user"},
                ]
            },
        )

        results = recorder.value
        assert [(r.steamid, r.nick) for r in results] == [(FRIEND, "Gabe N")]
        # search results are not enriched
        assert len(http.sent) == 1


class TestChatlog:
    def test_chatlog_skips_own_messages(self, logged_api, http, recorder):
        logged_api.chatlog(FRIEND, recorder)
        req = http.last
        assert req.path == f"{COM_PATH_CHATLOG}1"
        assert req.params == {"sessionid": "sess-1"}

        http.respond(
            req,
            data=[
                {"m_unAccountID": 22202, "m_strMessage": "mine", "m_tsTimestamp": 10},
                {"m_unAccountID": 1, "m_strMessage": "theirs", "m_tsTimestamp": 11},
                {"m_strMessage": "no sender"},
            ],
        )

        messages = recorder.value
        assert len(messages) == 1
        assert messages[0].summary.steamid == FRIEND
        assert messages[0].text == "theirs"
        assert messages[0].tstamp == 11
        assert messages[0].type is MessageType.SAYTEXT

    def test_chatlog_rejects_bad_steamid(self, logged_api):
        with pytest.raises(ValueError):
            logged_api.chatlog("not-a-steamid")

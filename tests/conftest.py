"""Shared fixtures: an in-memory transport and ready-made API engines."""

from __future__ import annotations

import json
from typing import Any, List, Optional

import pytest

from steamchat.api import SteamApi
from steamchat.utils.config import ApiConfig
from steamchat.utils.http import HttpClient, HttpFlags, HttpRequest, SteamHttpError

OWN_STEAMID = "76561197960287930"


class FakeHttp(HttpClient):
    """HttpClient whose requests never leave the process.

    Queueing, pausing, resending and callback handling are the real ones;
    only the network exchange is replaced. Dispatched requests collect in
    ``sent`` and are completed by calling :meth:`respond`.
    """

    def __init__(self) -> None:
        super().__init__("steamchat-tests")
        self.sent: List[HttpRequest] = []

    def _dispatch(self, req: HttpRequest) -> None:
        if req.flags & HttpFlags.QUEUED:
            self._busy = req
        self.sent.append(req)

    @property
    def last(self) -> HttpRequest:
        return self.sent[-1]

    def paths(self) -> List[str]:
        return [req.path for req in self.sent]

    def respond(
        self,
        req: HttpRequest,
        body: Optional[str] = None,
        *,
        data: Any = None,
        error: Optional[SteamHttpError] = None,
        status: int = 200,
    ) -> None:
        if data is not None:
            body = json.dumps(data)
        self._begin(req)
        self._complete(req, body=body, status=status, error=error)

    def respond_players(self, req: HttpRequest, **fields: Any) -> None:
        """Answer a summaries request with a player entry for every id it lists."""

        players = []
        for steamid in req.params["steamids"].split(","):
            entry = {"steamid": steamid, "personaname": f"nick-{steamid[-4:]}", "personastate": 1}
            entry.update(fields)
            players.append(entry)
        self.respond(req, data={"players": players})


class Recorder:
    """Callback that remembers every invocation's arguments."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []

    def __call__(self, *args: Any) -> None:
        self.calls.append(args)

    @property
    def count(self) -> int:
        return len(self.calls)

    @property
    def error(self):
        return self.calls[-1][-1]

    @property
    def value(self):
        return self.calls[-1][1]


@pytest.fixture
def http() -> FakeHttp:
    return FakeHttp()


@pytest.fixture
def api(http: FakeHttp) -> SteamApi:
    return SteamApi(ApiConfig(), umqid="4242", http=http)


@pytest.fixture
def logged_api(api: SteamApi) -> SteamApi:
    api.session.token = "oauth-token"
    api.session.steamid = OWN_STEAMID
    api.session.sessid = "sess-1"
    api.session.lmid = 5
    return api


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()

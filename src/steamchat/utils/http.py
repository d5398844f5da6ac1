"""Queued HTTP transport used by the Steam API engine."""

from __future__ import annotations

import asyncio
import enum
from collections import deque
from http.cookiejar import CookieJar
from typing import Callable, Deque, Dict, Mapping, Optional, Set

import httpx
from loguru import logger

from steamchat.utils.config import HTTP_TIMEOUT_DEFAULT, USER_AGENT


class HttpFlags(enum.IntFlag):
    NONE = 0
    POST = enum.auto()
    SSL = enum.auto()
    # Serialize relative to other QUEUED requests (one in flight at a time)
    QUEUED = enum.auto()
    # Keep the request usable after its callback returns (set by resend)
    NOFREE = enum.auto()


class SteamHttpError(RuntimeError):
    """Raised for connection failures and non-2xx responses."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


HttpCallback = Callable[["HttpRequest"], None]


class HttpRequest:
    """One HTTP exchange: what to send and, once completed, what came back."""

    def __init__(
        self,
        host: str,
        path: str,
        callback: HttpCallback,
        *,
        port: int = 443,
        flags: HttpFlags = HttpFlags.SSL,
    ) -> None:
        self.host = host
        self.port = port
        self.path = path
        self.callback = callback
        self.flags = flags
        self.headers: Dict[str, str] = {}
        self.params: Dict[str, str] = {}

        self.body: Optional[str] = None
        self.status: Optional[int] = None
        self.error: Optional[SteamHttpError] = None
        self.closed = False

    def __repr__(self) -> str:
        return f"<HttpRequest {self.method} {self.url}>"

    @property
    def method(self) -> str:
        return "POST" if self.flags & HttpFlags.POST else "GET"

    @property
    def url(self) -> str:
        scheme = "https" if self.flags & HttpFlags.SSL else "http"
        default_port = 443 if scheme == "https" else 80
        netloc = self.host if self.port == default_port else f"{self.host}:{self.port}"
        return f"{scheme}://{netloc}{self.path}"

    def set_params(self, pairs: Optional[Mapping[str, object]] = None, **kwargs: object) -> None:
        """Add request parameters, skipping ``None`` values."""

        merged: Dict[str, object] = dict(pairs or {})
        merged.update(kwargs)
        for key, value in merged.items():
            if value is None:
                continue
            self.params[key] = str(value)

    def set_headers(self, **headers: str) -> None:
        self.headers.update(headers)

    def close(self) -> None:
        self.closed = True


class HttpClient:
    """FIFO request queue with pause/resume and a shared cookie jar.

    Requests are performed as asyncio tasks on the running loop; callbacks are
    invoked on that loop once each exchange completes. While paused, every
    send that is not forced is parked in the queue.
    """

    def __init__(
        self,
        user_agent: str = USER_AGENT,
        *,
        timeout: float = HTTP_TIMEOUT_DEFAULT,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.user_agent = user_agent
        # The only cookie store; every httpx client used here shares it
        self._jar = CookieJar()
        self._timeout = timeout
        self._http = client
        if client is not None:
            client.cookies = self._jar
        self._queue: Deque[HttpRequest] = deque()
        self._paused = False
        self._busy: Optional[HttpRequest] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def queued(self) -> list[HttpRequest]:
        return list(self._queue)

    @property
    def cookies(self) -> Dict[str, str]:
        """Snapshot of the jar by name; a later cookie wins over an earlier one."""

        return {cookie.name: cookie.value for cookie in self._jar if cookie.value is not None}

    def request(
        self,
        host: str,
        path: str,
        callback: HttpCallback,
        *,
        port: int = 443,
        flags: HttpFlags = HttpFlags.SSL,
    ) -> HttpRequest:
        return HttpRequest(host, path, callback, port=port, flags=flags)

    def set_cookies(self, pairs: Optional[Mapping[str, Optional[str]]] = None, **kwargs: Optional[str]) -> None:
        """Replace cookies by name for every host; a ``None`` value deletes."""

        merged: Dict[str, Optional[str]] = dict(pairs or {})
        merged.update(kwargs)
        jar = httpx.Cookies(self._jar)
        for name, value in merged.items():
            jar.delete(name)
            if value is not None:
                jar.set(name, value)

    def send(self, req: HttpRequest, *, force: bool = False) -> None:
        """Send a request, or park it when the queue is paused or busy."""

        if req.closed:
            raise ValueError(f"Cannot send closed request {req!r}")

        if not force:
            if self._paused or (req.flags & HttpFlags.QUEUED and self._busy is not None):
                logger.debug("Queueing {} (paused={})", req, self._paused)
                self._queue.append(req)
                return
        self._dispatch(req)

    def resend(self, req: HttpRequest) -> None:
        """Send the same request again ahead of everything already queued."""

        if req.closed:
            raise ValueError(f"Cannot resend closed request {req!r}")
        req.flags |= HttpFlags.NOFREE
        self._queue.appendleft(req)
        logger.debug("Resending {} (paused={})", req, self._paused)
        if not self._paused:
            self._process_queue()

    def cancel(self, req: HttpRequest) -> bool:
        """Drop a parked request and close it."""

        try:
            self._queue.remove(req)
        except ValueError:
            return False
        req.close()
        return True

    def pause(self, paused: bool) -> None:
        if self._paused == paused:
            return
        self._paused = paused
        logger.debug("HTTP queue {}", "paused" if paused else "resumed")
        if not paused:
            self._process_queue()

    def _process_queue(self) -> None:
        while self._queue and not self._paused:
            req = self._queue[0]
            if req.closed:
                self._queue.popleft()
                logger.debug("Dropping closed request {}", req)
                continue
            if req.flags & HttpFlags.QUEUED and self._busy is not None:
                return
            self._queue.popleft()
            self._dispatch(req)

    def _ensure_http_client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=False,
                cookies=self._jar,
            )
        return self._http

    def _dispatch(self, req: HttpRequest) -> None:
        if req.flags & HttpFlags.QUEUED:
            self._busy = req
        task = asyncio.get_running_loop().create_task(self._perform(req))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _begin(self, req: HttpRequest) -> None:
        req.flags &= ~HttpFlags.NOFREE
        req.body = None
        req.status = None
        req.error = None

    def _headers_for(self, req: HttpRequest) -> Dict[str, str]:
        headers = {"User-Agent": self.user_agent}
        headers.update(req.headers)
        return headers

    async def _perform(self, req: HttpRequest) -> None:
        self._begin(req)
        http_client = self._ensure_http_client()
        headers = self._headers_for(req)
        logger.debug("{} {}", req.method, req.url)

        try:
            if req.flags & HttpFlags.POST:
                response = await http_client.post(req.url, data=req.params, headers=headers)
            else:
                response = await http_client.get(req.url, params=req.params, headers=headers)
        except httpx.HTTPError as exc:
            detail = str(exc) or exc.__class__.__name__
            self._complete(req, error=SteamHttpError(detail))
            return

        error = None
        if not response.is_success:
            error = SteamHttpError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status=response.status_code,
            )
        self._complete(req, body=response.text, status=response.status_code, error=error)

    def _complete(
        self,
        req: HttpRequest,
        *,
        body: Optional[str] = None,
        status: Optional[int] = None,
        error: Optional[SteamHttpError] = None,
    ) -> None:
        req.body = body
        req.status = status
        req.error = error
        if self._busy is req:
            self._busy = None

        try:
            req.callback(req)
        except Exception:  # noqa: BLE001
            logger.exception("Unhandled error in callback for {}", req)

        if not req.flags & HttpFlags.NOFREE:
            req.close()
        self._process_queue()

    async def aclose(self) -> None:
        """Cancel in-flight requests and close the underlying httpx client."""

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self._queue.clear()
        if self._http is not None:
            await self._http.aclose()
            self._http = None

"""Friend-summary enrichment: batching lookups and fanning results back."""

from __future__ import annotations

import weakref
from typing import Any, Dict, List, Mapping

from loguru import logger

from steamchat.api.calls import SUMMARIES_MAX, ApiCall
from steamchat.api.types import FriendSummary
from steamchat.utils import json_tree

# Times an id the server left out of a summaries response is asked for again
SUMMARY_RETRIES = 1


def apply_summary_json(summary: FriendSummary, data: Mapping[str, Any]) -> None:
    """Copy the profile fields of a ``players`` entry onto ``summary``."""

    summary.game = json_tree.get_str(data, "gameextrainfo")
    summary.server = json_tree.get_str(data, "gameserverip")
    summary.nick = json_tree.get_str(data, "personaname")
    summary.fullname = json_tree.get_str(data, "realname")
    summary.state = json_tree.get_int(data, "personastate") or 0


class SummaryBatcher:
    """Tracks summaries awaiting enrichment across every open call.

    Each call keeps its own ``pending`` map of weak references; the batcher
    keeps the reverse index (steamid -> calls) so that a single summaries
    response fills the matching summaries of every call waiting on that id.
    """

    def __init__(self, retries: int = SUMMARY_RETRIES) -> None:
        self.retries = retries
        self._waiting: Dict[str, List[ApiCall]] = {}

    def register(self, call: ApiCall, summary: FriendSummary) -> None:
        refs = call.pending.setdefault(summary.steamid, [])
        refs.append(weakref.ref(summary))
        calls = self._waiting.setdefault(summary.steamid, [])
        if call not in calls:
            calls.append(call)

    def waiting(self, steamid: str) -> List[ApiCall]:
        return list(self._waiting.get(steamid, []))

    def next_batch(self, call: ApiCall) -> List[str]:
        """Pick the next ids to request for ``call``, first-seen order."""

        seen: set[str] = set()
        ids: List[str] = []
        for steamid in call.pending:
            if steamid in seen:
                continue
            seen.add(steamid)
            ids.append(steamid)
            if len(ids) >= SUMMARIES_MAX:
                break
        call.batch = ids
        return ids

    def reconcile(self, call: ApiCall, data: Any) -> List[ApiCall]:
        """Apply a summaries response.

        Every waiting summary whose steamid appears in ``players`` is filled
        in place, whichever call it belongs to. Ids that ``call`` asked for
        but the server omitted are retried up to ``retries`` times and then
        dropped. Returns the *other* calls whose pending maps are now empty.
        """

        players = json_tree.get_array(data, "players") or []
        returned: set[str] = set()
        touched: List[ApiCall] = []

        for entry in players:
            steamid = json_tree.get_str(entry, "steamid")
            if steamid is None:
                continue
            returned.add(steamid)
            for waiting in self._waiting.pop(steamid, []):
                for ref in waiting.pending.pop(steamid, []):
                    summary = ref()
                    if summary is not None:
                        apply_summary_json(summary, entry)
                waiting.attempts.pop(steamid, None)
                if waiting is not call and waiting not in touched:
                    touched.append(waiting)

        for steamid in call.batch:
            if steamid in returned or steamid not in call.pending:
                continue
            attempts = call.attempts.get(steamid, 0) + 1
            if attempts > self.retries:
                logger.warning("No summary returned for {}; leaving it unenriched", steamid)
                self._drop(call, steamid)
            else:
                call.attempts[steamid] = attempts
        call.batch = []

        return [other for other in touched if not other.pending]

    def forget(self, call: ApiCall) -> None:
        """Abandon every pending enrichment of ``call``."""

        for steamid in list(call.pending):
            self._drop(call, steamid)
        call.batch = []

    def clear(self) -> None:
        """Abandon every pending enrichment of every call."""

        for calls in list(self._waiting.values()):
            for call in calls:
                call.pending.clear()
                call.attempts.clear()
                call.batch = []
        self._waiting.clear()

    def _drop(self, call: ApiCall, steamid: str) -> None:
        call.pending.pop(steamid, None)
        call.attempts.pop(steamid, None)
        calls = self._waiting.get(steamid)
        if calls is None:
            return
        if call in calls:
            calls.remove(call)
        if not calls:
            del self._waiting[steamid]

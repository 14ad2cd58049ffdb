"""
Search coordinator

Two independent search paths:

Interactive search
    search(text) arms a single-shot debounce timer; every call restarts it,
    so a burst of keystrokes produces one request carrying the last text.
    Each fired request is stamped with a generation and only the reply of the
    newest generation is applied. The whole phase is one task in the task
    table.

Simple (federated) search
    simple_search(text, caller_id) is issued at once and returns a request id.
    Several requests may share a caller id; SearchFinished(caller_id) is
    emitted once the last of them has been answered.
"""

import asyncio
from typing import List, Optional, Set

from ..config.settings import Settings, get_settings
from ..core.context import SessionContext
from ..core.correlation import GenerationCounter, PendingTokens
from ..core.events import EventBus, ResultsAvailable, SearchFinished, SearchResultsChanged
from ..core.tasks import TaskManager
from ..qobuz.dispatcher import RESOURCE_SEARCH
from ..qobuz.extractor import ResponseExtractor
from ..qobuz.models import PendingSearch, Track, extract_tracks
from ..utils.helpers import tokenize_query
from ..utils.logger import get_logger

SEARCH_TYPE_TRACKS = "tracks"


class SearchCoordinator:
    """
    Debounced interactive search and fan-out simple search

    Attributes:
        results: Tracks of the current interactive search
        search_task_id: Task of the interactive search phase (0 when idle)
        pending: Outstanding simple searches keyed by request id
    """

    def __init__(
        self,
        context: SessionContext,
        dispatcher,
        extractor: ResponseExtractor,
        events: EventBus,
        tasks: TaskManager,
        settings: Optional[Settings] = None
    ):
        self.context = context
        self.dispatcher = dispatcher
        self.extractor = extractor
        self.events = events
        self.tasks = tasks
        self.settings = settings or get_settings()
        self.logger = get_logger(__name__)

        self.results: List[Track] = []
        self.pending_text = ""
        self.search_task_id = 0

        self._generation = GenerationCounter()
        self._in_flight_generation: Optional[int] = None
        self._timer: Optional[asyncio.TimerHandle] = None

        self.pending = PendingTokens()
        self._handlers: Set[asyncio.Task] = set()

    # Interactive search

    @property
    def debounce_seconds(self) -> float:
        return self.settings.search.debounce_ms / 1000.0

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None

    def search(self, text: str, now: bool = False) -> None:
        """
        Record a query and (re)arm the debounce timer

        Args:
            text: Query text; an empty string clears the results without a call
            now: Fire immediately instead of waiting for the debounce interval
        """
        if self.context.closing:
            self.logger.debug("Logout in progress, search ignored")
            return

        self.pending_text = text
        self._cancel_timer()

        if not text:
            # Any reply still in flight becomes stale
            self._generation.cancel_all()
            self._in_flight_generation = None
            self.results = []
            self.events.emit(SearchResultsChanged(query="", tracks=[]))
            self._finish_search_task()
            return

        if not self.tasks.is_active(self.search_task_id):
            self.search_task_id = self.tasks.begin("Searching Qobuz")

        if now:
            self._fire()
        else:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self.debounce_seconds, self._fire)

    def _fire(self) -> None:
        self._timer = None
        text = self.pending_text

        # The previous reply may have ended the phase while this call was armed
        if not self.tasks.is_active(self.search_task_id):
            self.search_task_id = self.tasks.begin("Searching Qobuz")

        self.results = []
        generation = self._generation.issue()
        self._in_flight_generation = generation

        self.logger.debug(f"Searching Qobuz for '{text}' (generation {generation})")
        call = self.dispatcher.issue(RESOURCE_SEARCH, {
            'limit': self.settings.search.search_limit,
            'query': text,
            'type': SEARCH_TYPE_TRACKS,
        }, requires_auth=True)
        self._track(self._search_finished(call, generation, text))

    async def _search_finished(self, call, generation: int, text: str) -> None:
        result = self.extractor.extract(await call)

        if not self._generation.is_live(generation):
            self.logger.debug(f"Ignoring superseded search reply (generation {generation})")
            return

        self._in_flight_generation = None
        if result.ok:
            self.results.extend(extract_tracks(result.get('tracks')))
            self.events.emit(SearchResultsChanged(query=text, tracks=list(self.results)))

        # A newer query is armed; the phase goes on until it is answered
        if self._timer is None:
            self._finish_search_task()

    def stop(self) -> None:
        """Cancel a pending timer; the task ends now unless a reply is still due"""
        self._cancel_timer()
        if self._in_flight_generation is None:
            self._finish_search_task()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _finish_search_task(self) -> None:
        if self.search_task_id:
            self.tasks.finish(self.search_task_id)
            self.search_task_id = 0

    def clear_results(self) -> None:
        """Drop the results; any reply still in flight becomes stale"""
        self._cancel_timer()
        self._generation.cancel_all()
        self._in_flight_generation = None
        self.results = []
        self.pending_text = ""
        self._finish_search_task()

    # Simple search

    def simple_search(self, text: str, caller_id: Optional[int] = None) -> int:
        """
        Issue a non-debounced search

        Args:
            text: Query text
            caller_id: Logical id results are reported under; defaults to the
                returned request id

        Returns:
            Request id of this call
        """
        entry = PendingSearch(caller_id=caller_id or 0, query_tokens=tokenize_query(text))
        request_id = self.pending.issue(entry)
        if caller_id is None:
            entry.caller_id = request_id

        call = self.dispatcher.issue(RESOURCE_SEARCH, {
            'limit': self.settings.search.simple_search_limit,
            'query': text,
            'type': SEARCH_TYPE_TRACKS,
        }, requires_auth=True)
        self._track(self._simple_search_finished(call, request_id))
        return request_id

    async def _simple_search_finished(self, call, request_id: int) -> None:
        result = self.extractor.extract(await call)

        live, entry = self.pending.take(request_id)
        if not live:
            self.logger.debug(f"Ignoring reply for cancelled simple search {request_id}")
            return

        tracks = extract_tracks(result.get('tracks')) if result.ok else []
        self.events.emit(ResultsAvailable(caller_id=entry.caller_id, tracks=tracks))

        if not self.has_pending(entry.caller_id):
            self.events.emit(SearchFinished(caller_id=entry.caller_id))

    def has_pending(self, caller_id: int) -> bool:
        return any(entry.caller_id == caller_id for entry in self.pending.payloads())

    def cancel_simple_searches(self) -> None:
        """Drop every outstanding simple search, finishing each orphaned caller once"""
        orphaned = []
        for entry in self.pending.cancel_all():
            if entry.caller_id not in orphaned:
                orphaned.append(entry.caller_id)
        for caller_id in orphaned:
            self.events.emit(SearchFinished(caller_id=caller_id))

    def _track(self, coro) -> None:
        handler = asyncio.get_running_loop().create_task(coro)
        self._handlers.add(handler)
        handler.add_done_callback(self._handlers.discard)

    async def wait_handlers(self) -> None:
        """Wait for every reply handler scheduled so far"""
        if self._handlers:
            await asyncio.gather(*list(self._handlers), return_exceptions=True)

"""
Filtering of the resume collection and debounced recomputation.

filter_resumes is a pure function; SearchEngine wires it to a RecordStore
so every change to the records or the filters schedules one recomputation
after the debounce delay, with later changes restarting the timer.
"""

import threading
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from .config import DEBOUNCE_MS
from .logger import get_logger
from .models import ResumeRecord, ResumeStatus, SearchFilters
from .normalize import as_text_list, normalize_text, personal_field
from .store import FILTERS, RESUMES, RecordStore

logger = get_logger()


def searchable_fields(record: ResumeRecord) -> List[str]:
    """File name, parsed name and parsed email(s) of a record."""
    values = [record.file_name]
    values.extend(as_text_list(personal_field(record.parsed_data, "name")))
    values.extend(as_text_list(personal_field(record.parsed_data, "email")))
    return values


def matches_query(record: ResumeRecord, query: str) -> bool:
    needle = normalize_text(query or "")
    if not needle:
        return True
    return any(needle in normalize_text(value) for value in searchable_fields(record))


def matches_status(record: ResumeRecord, statuses: Iterable[ResumeStatus]) -> bool:
    statuses = frozenset(statuses)
    return not statuses or record.status in statuses


def _comparable(a: datetime, b: datetime) -> datetime:
    # Naive bounds are read in the record's timezone
    if a.tzinfo is None and b.tzinfo is not None:
        return a.replace(tzinfo=b.tzinfo)
    return a


def matches_date_range(
    record: ResumeRecord,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> bool:
    uploaded = record.uploaded_at
    if start is not None and uploaded < _comparable(start, uploaded):
        return False
    if end is not None and uploaded > _comparable(end, uploaded):
        return False
    return True


def matches_group(record: ResumeRecord, group_id: Optional[str]) -> bool:
    return group_id is None or record.group_id == group_id


def filter_resumes(records: Iterable[ResumeRecord], filters: SearchFilters) -> List[ResumeRecord]:
    """
    Keep the records that satisfy every filter, in their original order.

    Within the query, a hit on any searchable field is enough; across
    filters, all must hold.
    """
    return [
        r for r in records
        if matches_query(r, filters.query)
        and matches_status(r, filters.statuses)
        and matches_date_range(r, filters.date_start, filters.date_end)
        and matches_group(r, filters.group_id)
    ]


class Debouncer:
    """
    Restartable delayed call.

    Each trigger() cancels the pending timer and schedules a fresh one, so a
    burst of triggers inside the delay produces a single call.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], None],
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        self.delay = delay
        self.callback = callback
        self.timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def trigger(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            generation = self._generation
            self._timer = self.timer_factory(self.delay, self._fire, args=(generation,))
            self._timer.daemon = True
            self._timer.start()

    def _fire(self, generation: int):
        with self._lock:
            # A timer that lost the race with cancel() must not run
            if generation != self._generation or self._timer is None:
                return
            self._timer = None
        self.callback()

    def flush(self):
        """Run the pending call now instead of waiting for the timer."""
        with self._lock:
            if self._timer is None:
                return
            self._timer.cancel()
            self._timer = None
            self._generation += 1
        self.callback()

    def cancel(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1


class SearchEngine:
    """Keeps a filtered view of a store's resumes up to date."""

    def __init__(
        self,
        store: RecordStore,
        delay: float = DEBOUNCE_MS / 1000.0,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        self.store = store
        self.results: List[ResumeRecord] = []
        self.recomputations = 0
        self._listeners: List[Callable[[List[ResumeRecord]], None]] = []
        self._debouncer = Debouncer(delay, self.recompute, timer_factory=timer_factory)
        self._unsubscribe = store.subscribe(self._on_store_change)

    def on_results(self, listener: Callable[[List[ResumeRecord]], None]):
        self._listeners.append(listener)

    def _on_store_change(self, topic: str):
        if topic in (RESUMES, FILTERS):
            self._debouncer.trigger()

    def recompute(self) -> List[ResumeRecord]:
        """Filter the store's current records with its current filters."""
        filters = self.store.filters
        results = filter_resumes(self.store.resumes, filters)
        self.results = results
        self.recomputations += 1
        logger.record_search()
        logger.debug("Search recomputed", query=filters.query, matches=len(results))
        for listener in list(self._listeners):
            listener(results)
        return results

    def flush(self):
        self._debouncer.flush()

    def close(self):
        self._unsubscribe()
        self._debouncer.cancel()

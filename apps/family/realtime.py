"""
Change feed for family and relationship records.

Saves and deletes publish a :class:`ChangeEvent` to the in-process
:data:`feed` once their transaction commits. Clients that miss pushed
events catch up by polling :func:`changes_since`; :class:`RecordCache`
merges both sources so an entry never moves backwards in time.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from django.conf import settings
from django.db.models import QuerySet
from django.utils import timezone
from django.utils.dateparse import parse_datetime

logger = logging.getLogger(__name__)

INSERT = 'INSERT'
UPDATE = 'UPDATE'
DELETE = 'DELETE'


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event: str
    record_id: str
    updated_at: Optional[datetime]
    record: Dict[str, Any] = field(default_factory=dict)


class ChangeFeed:
    """Fan-out of change events to subscribers, optionally filtered by table."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: List[tuple] = []

    def subscribe(self, callback: Callable[[ChangeEvent], None], table: Optional[str] = None):
        """Register ``callback``; returns a function that unsubscribes it."""
        entry = (table, callback)
        with self._lock:
            self._subscribers.append(entry)

        def unsubscribe():
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return unsubscribe

    def has_subscribers(self, table: Optional[str] = None) -> bool:
        """True when a published event for ``table`` would reach anyone."""
        with self._lock:
            return any(
                subscribed is None or subscribed == table
                for subscribed, _ in self._subscribers
            )

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)

        for table, callback in subscribers:
            if table is None or table == event.table:
                callback(event)

        logger.debug("%s on %s %s", event.event, event.table, event.record_id)


class RecordCache:
    """
    Last known state of records keyed by id.

    Merging is idempotent: an entry is only replaced by one with a newer
    ``updated_at``, and a deleted id stays deleted. ``updated_at`` may be a
    datetime (pushed events) or an ISO 8601 string (rows polled over JSON).

    Deleted ids are remembered up to ``max_tombstones``; the oldest are
    forgotten first.
    """

    def __init__(self, max_tombstones: int = 10000):
        self.max_tombstones = max_tombstones
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._versions: Dict[str, Optional[datetime]] = {}
        self._deleted: 'OrderedDict[str, None]' = OrderedDict()

    def __len__(self):
        return len(self._entries)

    def __contains__(self, record_id):
        return str(record_id) in self._entries

    def get(self, record_id) -> Optional[Dict[str, Any]]:
        return self._entries.get(str(record_id))

    def values(self) -> List[Dict[str, Any]]:
        return list(self._entries.values())

    def merge_record(self, record_id, record: Dict[str, Any], updated_at) -> bool:
        """Store ``record`` unless a newer version is already cached. Returns True if stored."""
        record_id = str(record_id)
        if record_id in self._deleted:
            return False

        updated_at = as_moment(updated_at)
        current = self._versions.get(record_id)
        if record_id in self._entries and current is not None:
            if updated_at is None or updated_at <= current:
                return False

        self._entries[record_id] = dict(record)
        self._versions[record_id] = updated_at
        return True

    def apply_event(self, event: ChangeEvent) -> bool:
        if event.event == DELETE:
            self._forget(event.record_id)
            self._versions.pop(event.record_id, None)
            return self._entries.pop(event.record_id, None) is not None
        return self.merge_record(event.record_id, event.record, event.updated_at)

    def merge_polled(self, records: Iterable[Dict[str, Any]]) -> int:
        """Merge polled rows (dicts with ``id`` and ``updated_at``). Returns how many changed."""
        return sum(
            1 for record in records
            if self.merge_record(record['id'], record, record.get('updated_at'))
        )

    def _forget(self, record_id: str) -> None:
        self._deleted[record_id] = None
        self._deleted.move_to_end(record_id)
        while len(self._deleted) > self.max_tombstones:
            self._deleted.popitem(last=False)


def as_moment(value) -> Optional[datetime]:
    """Coerce a datetime or ISO 8601 string into an aware datetime."""
    if value is None or isinstance(value, datetime):
        moment = value
    else:
        moment = parse_datetime(str(value))
        if moment is None:
            raise ValueError(f"Invalid timestamp: {value}")
    if moment is not None and timezone.is_naive(moment):
        moment = timezone.make_aware(moment)
    return moment


def next_poll_time(now: Optional[datetime] = None) -> datetime:
    """
    ``since`` value for a client's next poll.

    Rows saved just before ``now`` may commit after this poll has run, so
    the next poll starts CHANGE_FEED_POLL_OVERLAP_SECONDS earlier and
    re-delivers them; the cache drops the duplicates.
    """
    now = now or timezone.now()
    return now - timedelta(seconds=settings.CHANGE_FEED_POLL_OVERLAP_SECONDS)


def parse_since(value: Optional[str]) -> Optional[datetime]:
    """Parse a ``since`` query value; raises ValueError when malformed."""
    if not value:
        return None
    since = parse_datetime(value)
    if since is None:
        raise ValueError(f"Invalid timestamp: {value}")
    if timezone.is_naive(since):
        since = timezone.make_aware(since)
    return since


def changes_since(queryset: QuerySet, since: Optional[datetime]) -> QuerySet:
    """Rows of ``queryset`` updated after ``since``, oldest first."""
    if since is not None:
        queryset = queryset.filter(updated_at__gt=since)
    return queryset.order_by('updated_at')


feed = ChangeFeed()

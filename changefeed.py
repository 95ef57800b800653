"""
Change notifications for watched tables.

Committed inserts, updates and deletes are collected from SQLAlchemy session
events and delivered to every subscriber of the affected table, whichever
request or thread made the change.
"""
import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from flask import current_app, has_app_context
from sqlalchemy import event

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'changefeed'
_PENDING_KEY = 'changefeed_pending'
_installed_sessions = set()


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event: str  # INSERT, UPDATE or DELETE
    record_id: Optional[str] = None


class Subscription:
    """A registered callback; release() detaches it. Usable as a context manager."""

    def __init__(self, feed, channel: str, table: str, callback: Callable[[ChangeEvent], None]):
        self.id = None
        self.channel = channel
        self.table = table
        self.callback = callback
        self._feed = feed
        self.active = False

    def release(self) -> None:
        if self.active:
            self._feed.remove(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False

    def __repr__(self):
        return f'<Subscription {self.channel} on {self.table}>'


class ChangeFeed:
    """In-process fan-out of table change events."""

    def __init__(self):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._subscriptions = {}

    def init_app(self, app, db) -> None:
        app.extensions[EXTENSION_KEY] = self
        _install_session_hooks(db.session)

    def subscribe(self, channel, table, callback, on_status=None) -> Subscription:
        subscription = Subscription(self, channel, table, callback)
        with self._lock:
            subscription.id = next(self._ids)
            subscription.active = True
            self._subscriptions[subscription.id] = subscription
        logger.debug('Subscribed %s to %s', channel, table)
        if on_status is not None:
            on_status('SUBSCRIBED')
        return subscription

    def remove(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions.pop(subscription.id, None)
            subscription.active = False
        logger.debug('Released %s', subscription.channel)

    def active_count(self, table=None) -> int:
        with self._lock:
            return sum(1 for s in self._subscriptions.values() if table is None or s.table == table)

    def publish(self, change: ChangeEvent) -> None:
        with self._lock:
            targets = [s for s in self._subscriptions.values() if s.table == change.table]
        for subscription in targets:
            try:
                subscription.callback(change)
            except Exception:
                # One broken subscriber must not stop delivery to the rest.
                logger.exception('Change callback for %s failed', subscription.channel)


def _table_of(obj):
    return getattr(type(obj), '__tablename__', None)


def _record_changes(session, flush_context):
    pending = session.info.setdefault(_PENDING_KEY, [])
    for kind, objects in (('INSERT', session.new), ('UPDATE', session.dirty), ('DELETE', session.deleted)):
        for obj in objects:
            table = _table_of(obj)
            if table is None:
                continue
            if kind == 'UPDATE' and not session.is_modified(obj):
                continue
            pending.append(ChangeEvent(table, kind, getattr(obj, 'id', None)))


def _publish_changes(session):
    pending = session.info.pop(_PENDING_KEY, [])
    if not pending or not has_app_context():
        return
    feed = current_app.extensions.get(EXTENSION_KEY)
    if feed is None:
        return
    for change in pending:
        feed.publish(change)


def _discard_changes(session, previous_transaction=None):
    session.info.pop(_PENDING_KEY, None)


def _install_session_hooks(session):
    # db is shared by every app in the process; hook its session class once.
    if id(session) in _installed_sessions:
        return
    event.listen(session, 'after_flush', _record_changes)
    event.listen(session, 'after_commit', _publish_changes)
    event.listen(session, 'after_rollback', _discard_changes)
    _installed_sessions.add(id(session))

"""Realtime change bus: fan-out of row change events to live subscribers.

This is a "watch" feature for connected clients, not an event log:
delivery is best-effort and at-most-once, nothing is persisted, and a
subscriber that disconnects simply stops receiving events.
"""

import asyncio
import itertools
import threading
from typing import Any, Callable

import structlog

from tenantdb import metrics

logger = structlog.get_logger()

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"

CHANGE_EVENTS = (INSERT, UPDATE, DELETE)

Deliver = Callable[[dict[str, Any]], None]


class Subscription:
    """One subscriber's interest in tables of a single project."""

    def __init__(self, subscription_id: int, project_id: str, deliver: Deliver):
        self.id = subscription_id
        self.project_id = project_id
        self.tables: set[str] = set()
        self._deliver = deliver

    def wants(self, project_id: str, table: str) -> bool:
        return project_id == self.project_id and table in self.tables

    def deliver(self, message: dict[str, Any]) -> None:
        self._deliver(message)


class ChangeBus:
    """
    Registry of subscriptions and the publish entry point.

    `publish` is synchronous and never blocks: each subscriber's `deliver`
    callback must hand the message off (e.g. to a bounded queue) and
    return immediately.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[int, Subscription] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)

    def connect(self, project_id: str, deliver: Deliver) -> Subscription:
        with self._lock:
            subscription = Subscription(next(self._ids), project_id, deliver)
            self._subscriptions[subscription.id] = subscription
        metrics.REALTIME_CONNECTIONS.inc()
        logger.info("realtime_connected", project_id=project_id, subscription_id=subscription.id)
        return subscription

    def disconnect(self, subscription: Subscription) -> None:
        with self._lock:
            removed = self._subscriptions.pop(subscription.id, None)
        if removed is not None:
            metrics.REALTIME_CONNECTIONS.dec()
            logger.info(
                "realtime_disconnected",
                project_id=subscription.project_id,
                subscription_id=subscription.id,
            )

    def subscribe(self, subscription: Subscription, table: str) -> None:
        with self._lock:
            subscription.tables.add(table)

    def unsubscribe(self, subscription: Subscription, table: str) -> None:
        with self._lock:
            subscription.tables.discard(table)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def publish(
        self,
        project_id: str,
        table: str,
        event: str,
        payload: dict[str, Any],
    ) -> int:
        """
        Send a change event to every subscriber watching (project_id, table).

        Args:
            project_id: Owning project
            table: Table name (subscribers watch names, not ids)
            event: One of INSERT, UPDATE, DELETE
            payload: {"record": {...}} or {"records": [...]}

        Returns:
            Number of subscribers the event was handed to
        """
        if event not in CHANGE_EVENTS:
            raise ValueError(f"Unknown change event: {event}")

        message = {"type": "change", "event": event, "table": table, **payload}

        with self._lock:
            targets = [s for s in self._subscriptions.values() if s.wants(project_id, table)]

        metrics.CHANGE_EVENTS_PUBLISHED.labels(event=event).inc()

        delivered = 0
        for subscription in targets:
            try:
                subscription.deliver(message)
                delivered += 1
            except Exception as e:
                # A broken subscriber must not fail the write that triggered the event
                logger.warning(
                    "realtime_delivery_failed",
                    subscription_id=subscription.id,
                    error=str(e),
                )

        logger.debug(
            "change_published",
            project_id=project_id,
            table=table,
            change_event=event,
            subscribers=delivered,
        )
        return delivered


def queue_deliverer(
    queue: asyncio.Queue,
    loop: asyncio.AbstractEventLoop,
) -> Deliver:
    """
    Build a deliver callback that feeds a bounded asyncio queue.

    Safe to call from any thread. When the queue is full the event is
    dropped and counted.
    """

    def _offer(message: dict[str, Any]) -> None:
        try:
            queue.put_nowait(message)
        except asyncio.QueueFull:
            metrics.CHANGE_EVENTS_DROPPED.inc()
            logger.warning("realtime_event_dropped", table=message.get("table"))

    def deliver(message: dict[str, Any]) -> None:
        if loop.is_closed():
            return
        loop.call_soon_threadsafe(_offer, message)

    return deliver

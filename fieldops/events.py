"""
Lifecycle event bus.

Notification and payment collaborators subscribe to named events; the engine
emits after the state change has been committed.

IMPORTANT: ``emit`` never raises. A failing subscriber is logged and skipped
so a notification failure never takes down a check-in or a payout.
"""

import logging
from collections import defaultdict

logger = logging.getLogger(__name__)

OFFER_CREATED = "offer_created"
OFFER_EXPIRED = "offer_expired"
JOB_ASSIGNED = "job_assigned"
JOB_STARTED = "job_started"
JOB_RETURNED_TO_POOL = "job_returned_to_pool"
VERIFICATION_REJECTED = "verification_rejected"
PAYOUT_READY = "payout_ready"
JOB_COMPLETED = "job_completed"

# Subscribe with this name to receive every event
ALL = "*"


class EventBus:
    """In-process publish/subscribe for lifecycle events."""

    def __init__(self):
        self._subscribers = defaultdict(list)

    def init_app(self, app):
        app.extensions["fieldops_events"] = self

    def subscribe(self, name, handler=None):
        """Register ``handler(name, payload)`` for ``name``.

        Usable as a decorator: ``@events.subscribe("payout_ready")``.
        """
        if handler is None:
            def decorator(fn):
                self._subscribers[name].append(fn)
                return fn
            return decorator
        self._subscribers[name].append(handler)
        return handler

    def unsubscribe(self, name, handler):
        handlers = self._subscribers.get(name, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, name, **payload):
        logger.info("Event %s: %s", name, payload)
        for handler in list(self._subscribers.get(name, [])) + list(self._subscribers.get(ALL, [])):
            try:
                handler(name, payload)
            except Exception:
                logger.exception("Subscriber %r failed handling %s", handler, name)

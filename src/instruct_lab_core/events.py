"""
Event Bus

Application-scoped publish/subscribe used by the session store to notify its host
(UI, CLI, tests) about lifecycle changes. Instances are injected, never module-global.
"""

import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

# Event names published by SessionStore
SESSION_STARTED = "session_started"
SESSION_EXPIRED = "session_expired"
SESSION_TORN_DOWN = "session_torn_down"
CREDENTIAL_CHANGED = "credential_changed"
STEP_CHANGED = "step_changed"
EVALUATION_STARTED = "evaluation_started"
EVALUATION_COMPLETED = "evaluation_completed"
EVALUATION_FAILED = "evaluation_failed"
JUDGE_PARSE_FAILED = "judge_parse_failed"
HISTORY_CLEARED = "history_cleared"

Handler = Callable[[Any], None]


class EventBus:
    """Synchronous pub/sub keyed by event name"""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        """Register handler for event; returns a function that unsubscribes it"""
        self._handlers[event].append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers[event]:
                self._handlers[event].remove(handler)

        return _unsubscribe

    def publish(self, event: str, payload: Any = None) -> None:
        """Call every handler for event in subscription order; a failing handler does not stop the rest"""
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(payload)
            except Exception:
                logger.exception("Handler for %s failed", event)

    def clear(self) -> None:
        self._handlers.clear()

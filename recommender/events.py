"""In-process publish/subscribe channel used for cache invalidation and staleness."""

import logging
import threading
from collections import defaultdict

logger = logging.getLogger(__name__)

TRAINING_EVENT_RECORDED = "training_event_recorded"
SETTINGS_CHANGED = "settings_changed"
STORE_MUTATED = "store_mutated"
INDEX_REBUILT = "index_rebuilt"
PREFERENCES_CHANGED = "preferences_changed"
RANKING_UPDATED = "ranking_updated"


class EventChannel:
    """Callbacks registered per topic; publish calls them synchronously in order."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers = defaultdict(list)

    def subscribe(self, topic, callback):
        with self._lock:
            self._subscribers[topic].append(callback)

        def unsubscribe():
            with self._lock:
                callbacks = self._subscribers.get(topic, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def publish(self, topic, **payload):
        with self._lock:
            callbacks = list(self._subscribers.get(topic, []))
        logger.debug("publish %s to %d subscriber(s)", topic, len(callbacks))
        for callback in callbacks:
            callback(**payload)
        return len(callbacks)

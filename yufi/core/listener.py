"""YuFi - Change signal listener.

Turns the backend's change notifications into RefreshRequested events.
Debouncing is left to the reconciler.  When the notification stream
fails or ends, the listener subscribes again after a growing delay.
"""

import logging
import queue
import threading
from contextlib import closing
from typing import Optional

from ..errors import BackendError
from .events import RefreshRequested

logger = logging.getLogger(__name__)

MAX_RETRY_DELAY = 30.0


class ChangeListener:
    """Background thread following the backend's change notifications.

    Args:
        backend: A BackendInterface implementation.
        events: Channel that receives RefreshRequested events.
        idle_timeout: How often, in seconds, the thread checks for stop().
        retry_delay: First delay, in seconds, before subscribing again
            after the stream failed; doubled on each further failure.
    """

    def __init__(self, backend, events: queue.Queue, idle_timeout: float = 0.5,
                 retry_delay: float = 1.0):
        self._backend = backend
        self._events = events
        self._idle_timeout = idle_timeout
        self._retry_delay = retry_delay
        self._delay = retry_delay
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True,
                                        name='yufi-listener')
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        self._delay = self._retry_delay
        while not self._stop.is_set():
            try:
                self._follow()
            except BackendError as e:
                logger.warning('Change notifications unavailable, retrying in %.1fs: %s',
                               self._delay, e.message)
            else:
                if self._stop.is_set():
                    return
                logger.debug('Change notification stream ended, subscribing again')
            if self._stop.wait(self._delay):
                return
            self._delay = min(self._delay * 2, MAX_RETRY_DELAY)

    def _follow(self) -> None:
        with closing(self._backend.change_notifications(self._idle_timeout)) as stream:
            for reason in stream:
                if self._stop.is_set():
                    break
                self._delay = self._retry_delay
                if reason is not None:
                    logger.debug('Change notification: %s', reason)
                    self._events.put(RefreshRequested(reason))

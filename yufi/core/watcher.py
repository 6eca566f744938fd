"""YuFi - Active-connection watcher.

Follows one activation attempt from the path returned by the connect
call until it reaches a terminal state, reporting each observed state
as an :class:`ActiveStateChanged` event.
"""

import logging
import queue
import threading
from contextlib import closing
from typing import Optional

from ..errors import BackendError
from ..models import ActiveState
from .events import ActiveStateChanged

logger = logging.getLogger(__name__)


class ActiveConnectionWatcher:
    """Spawns one watcher thread per activation attempt.

    Args:
        backend: A BackendInterface implementation.
        events: Channel that receives ActiveStateChanged events.
        timeout: Seconds to wait for a terminal state.
    """

    def __init__(self, backend, events: queue.Queue, timeout: float = 90.0):
        self._backend = backend
        self._events = events
        self._timeout = timeout

    def watch(self, ssid: str, active_path: str) -> threading.Thread:
        """Start watching *active_path* in the background."""
        thread = threading.Thread(target=self._run, args=(ssid, active_path),
                                  daemon=True, name='yufi-watcher')
        thread.start()
        return thread

    def _run(self, ssid: str, active_path: str) -> None:
        last: Optional[ActiveState] = None

        def emit(state: ActiveState, error: Optional[str] = None) -> None:
            logger.debug('%s: %s is %s', ssid, active_path, state.name)
            self._events.put(ActiveStateChanged(ssid, state, active_path, error))

        try:
            last = self._backend.get_active_state(active_path)
            emit(last)
            if last.is_terminal:
                return
            with closing(self._backend.active_state_changes(active_path, self._timeout)) as changes:
                for state in changes:
                    if state == last:
                        continue
                    last = state
                    emit(state)
                    if state.is_terminal:
                        return
            emit(ActiveState.DEACTIVATED, 'Connection attempt ended without a result')
        except BackendError as e:
            logger.warning('Watching %s failed: %s', ssid, e.message)
            emit(ActiveState.DEACTIVATED, e.message)
        except Exception as e:
            logger.exception('Unexpected error watching %s', ssid)
            emit(ActiveState.DEACTIVATED, str(e))

"""YuFi - Reconciliation loop.

The reconciler is the single consumer of the event channel.  Intents
from the front-end and completion events from workers, watchers and the
change listener arrive on the same FIFO queue; :meth:`Reconciler.drain`
applies them in order and then publishes one ``(snapshot, overlay)``
pair to every subscriber.

The reconciler never calls the backend itself.  All remote work goes
through the dispatcher and the watcher.
"""

import logging
import queue
import threading
import time
from typing import Callable, Dict, List, Optional, Set, get_args

from ..config import Settings
from ..errors import classify, is_credential_failure
from ..models import ActiveState, AppState
from . import dispatcher as ops
from . import intents
from .dispatcher import TaskDispatcher
from .events import (
    ActiveStateChanged,
    ConnectDone,
    DebounceElapsed,
    DetailsLoaded,
    DisconnectDone,
    ForgetDone,
    PasswordRevealed,
    RefreshRequested,
    ScanDone,
    SettingsSaved,
    StateLoaded,
    WifiToggled,
)
from .listener import ChangeListener
from .overlay import Overlay, PasswordPrompt, PendingConnect
from .watcher import ActiveConnectionWatcher

logger = logging.getLogger(__name__)

INCORRECT_PASSWORD = 'Incorrect password'

Subscriber = Callable[[AppState, Overlay], None]


def _start_timer(delay: float, callback: Callable[[], None]) -> None:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()


class Reconciler:
    """Owns the confirmed snapshot and the optimistic overlay.

    Args:
        backend: A BackendInterface implementation.
        settings: Timing configuration.
        dispatcher: Object with ``submit(operation)``; a TaskDispatcher
            over *backend* if None.
        watcher: Object with ``watch(ssid, active_path)``; an
            ActiveConnectionWatcher over *backend* if None.
        schedule: ``schedule(delay, callback)`` used for the debounce
            timer; a daemon ``threading.Timer`` if None.
    """

    def __init__(self, backend, settings: Optional[Settings] = None,
                 dispatcher=None, watcher=None,
                 schedule: Optional[Callable[[float, Callable[[], None]], None]] = None):
        self._settings = settings or Settings()
        self._events: queue.Queue = queue.Queue()
        self._dispatcher = dispatcher or TaskDispatcher(backend, self._events)
        self._watcher = watcher or ActiveConnectionWatcher(
            backend, self._events, self._settings.activation_timeout_s)
        self._listener = ChangeListener(backend, self._events)
        self._schedule = schedule or _start_timer
        self._subscribers: List[Subscriber] = []

        self._snapshot = AppState()
        self._pending: Optional[PendingConnect] = None
        self._optimistic: Optional[str] = None
        self._failed: Set[str] = set()
        # SSID of the connect call that has not returned yet
        self._connecting: Optional[str] = None
        # SSIDs whose failed-attempt profile is still being removed
        self._cleaning: Set[str] = set()
        # Connect operation waiting for that removal, by SSID
        self._held: Dict[str, object] = {}
        self._prompt: Optional[PasswordPrompt] = None
        self._status = ''
        self._scanning = False
        self._details = None
        self._revealed: Optional[str] = None
        self._details_revision = 0
        self._password_revision = 0
        self._debouncing = False

        self._handlers = {
            intents.ToggleWifi: self._on_toggle_wifi,
            intents.RequestScan: self._on_request_scan,
            intents.Reload: self._on_reload,
            intents.Connect: self._on_connect,
            intents.ConnectHidden: self._on_connect_hidden,
            intents.Disconnect: self._on_disconnect,
            intents.Forget: self._on_forget,
            intents.CancelPrompt: self._on_cancel_prompt,
            intents.LoadDetails: self._on_load_details,
            intents.SaveSettings: self._on_save_settings,
            intents.RevealPassword: self._on_reveal_password,
            ScanDone: self._on_scan_done,
            WifiToggled: self._on_wifi_toggled,
            ConnectDone: self._on_connect_done,
            DisconnectDone: self._on_disconnect_done,
            ForgetDone: self._on_forget_done,
            StateLoaded: self._on_state_loaded,
            ActiveStateChanged: self._on_active_state_changed,
            RefreshRequested: self._on_refresh_requested,
            DebounceElapsed: self._on_debounce_elapsed,
            DetailsLoaded: self._on_details_loaded,
            SettingsSaved: self._on_settings_saved,
            PasswordRevealed: self._on_password_revealed,
        }

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    @property
    def snapshot(self) -> AppState:
        return self._snapshot

    @property
    def overlay(self) -> Overlay:
        return Overlay(
            pending=self._pending,
            optimistic_active_ssid=self._optimistic,
            failed_connects=frozenset(self._failed),
            prompt=self._prompt,
            status=self._status,
            scanning=self._scanning,
            details=self._details,
            revealed_password=self._revealed,
            details_revision=self._details_revision,
            password_revision=self._password_revision,
        )

    def start(self, listen: bool = True) -> None:
        """Issue the first reload and start the change listener."""
        if listen:
            self._listener.start()
        self._dispatcher.submit(ops.ReloadState())

    def stop(self) -> None:
        self._listener.stop(timeout=1.0)

    def submit_intent(self, intent) -> None:
        """Queue a user intent; safe to call from any thread."""
        if not isinstance(intent, get_args(intents.Intent)):
            raise TypeError(f'Unknown intent: {intent!r}')
        self._events.put(intent)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback* for published views; returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def drain(self) -> int:
        """Apply every queued event, then publish once.

        Returns:
            Number of events applied.
        """
        count = 0
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                break
            self._apply(event)
            count += 1
        if count:
            self._publish()
        return count

    def run_until(self, predicate: Callable[[AppState, Overlay], bool],
                  timeout: float) -> bool:
        """Drain on the poll interval until *predicate* holds or *timeout* passes."""
        interval = self._settings.poll_interval_ms / 1000.0
        deadline = time.monotonic() + timeout
        while True:
            self.drain()
            if predicate(self._snapshot, self.overlay):
                return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(interval)

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    def _apply(self, event) -> None:
        self._handlers[type(event)](event)

    def _publish(self) -> None:
        snapshot, overlay = self._snapshot, self.overlay
        for callback in list(self._subscribers):
            try:
                callback(snapshot, overlay)
            except Exception:
                logger.exception('Subscriber %r failed', callback)

    def _reload(self) -> None:
        self._dispatcher.submit(ops.ReloadState())

    def _clear_attempt(self) -> None:
        self._pending = None
        self._optimistic = None
        self._connecting = None

    def _cleanup(self, ssid: str, profile_path: Optional[str] = None) -> None:
        logger.info('Removing profile created for failed attempt on %s', ssid)
        self._cleaning.add(ssid)
        self._dispatcher.submit(ops.ForgetProfile(ssid, cleanup=True, profile_path=profile_path))

    def _submit_connect(self, ssid: str, operation) -> None:
        if ssid in self._cleaning:
            logger.debug('Holding connect to %s until its old profile is removed', ssid)
            self._held[ssid] = operation
            return
        self._held.pop(ssid, None)
        self._dispatcher.submit(operation)

    # -- Intents -------------------------------------------------------------

    def _on_toggle_wifi(self, intent: intents.ToggleWifi) -> None:
        if not intent.enabled:
            self._clear_attempt()
            self._prompt = None
        self._status = 'Turning Wi-Fi on...' if intent.enabled else 'Turning Wi-Fi off...'
        self._dispatcher.submit(ops.SetRadioEnabled(intent.enabled))

    def _on_request_scan(self, intent: intents.RequestScan) -> None:
        self._scanning = True
        self._status = 'Scanning...'
        self._dispatcher.submit(ops.RequestScan())

    def _on_reload(self, intent: intents.Reload) -> None:
        self._reload()

    def _on_connect(self, intent: intents.Connect) -> None:
        self._prompt = None
        self._pending = None
        self._optimistic = intent.ssid
        self._connecting = intent.ssid
        self._status = f'Connecting to {intent.ssid}...'
        self._submit_connect(intent.ssid, ops.Connect(
            intent.ssid, intent.password, intent.from_password))

    def _on_connect_hidden(self, intent: intents.ConnectHidden) -> None:
        self._prompt = None
        self._pending = None
        self._optimistic = intent.ssid
        self._connecting = intent.ssid
        self._status = f'Connecting to {intent.ssid}...'
        self._submit_connect(intent.ssid, ops.ConnectHidden(
            intent.ssid, intent.security, intent.password))

    def _on_disconnect(self, intent: intents.Disconnect) -> None:
        self._clear_attempt()
        self._failed.discard(intent.ssid)
        self._status = f'Disconnecting from {intent.ssid}...'
        self._dispatcher.submit(ops.Disconnect(intent.ssid))

    def _on_forget(self, intent: intents.Forget) -> None:
        self._failed.discard(intent.ssid)
        if self._connecting == intent.ssid or (self._pending and self._pending.ssid == intent.ssid):
            self._clear_attempt()
        if self._prompt and self._prompt.ssid == intent.ssid:
            self._prompt = None
        self._status = f'Forgetting {intent.ssid}...'
        self._dispatcher.submit(ops.ForgetProfile(intent.ssid))

    def _on_cancel_prompt(self, intent: intents.CancelPrompt) -> None:
        if self._prompt is not None:
            self._status = f'Connection to {self._prompt.ssid} cancelled'
        self._prompt = None

    def _on_load_details(self, intent: intents.LoadDetails) -> None:
        self._details = None
        self._revealed = None
        self._dispatcher.submit(ops.LoadDetails(intent.ssid))

    def _on_save_settings(self, intent: intents.SaveSettings) -> None:
        self._status = f'Saving settings for {intent.ssid}...'
        self._dispatcher.submit(ops.SaveSettings(
            intent.ssid, intent.ip, intent.prefix, intent.gateway,
            intent.dns, intent.auto_reconnect))

    def _on_reveal_password(self, intent: intents.RevealPassword) -> None:
        self._revealed = None
        self._dispatcher.submit(ops.RevealPassword(intent.ssid))

    # -- Completion events ---------------------------------------------------

    def _on_scan_done(self, event: ScanDone) -> None:
        self._scanning = False
        if event.error is not None:
            self._status = f'Scan failed: {event.error.message}'
            return
        self._status = ''
        self._request_refresh('scan')

    def _on_wifi_toggled(self, event: WifiToggled) -> None:
        if event.error is not None:
            self._status = f'Could not change Wi-Fi state: {event.error.message}'
        else:
            self._status = 'Wi-Fi enabled' if event.enabled else 'Wi-Fi disabled'
        self._reload()

    def _on_connect_done(self, event: ConnectDone) -> None:
        if self._connecting != event.ssid:
            logger.debug('Ignoring stale connect result for %s', event.ssid)
            return
        self._connecting = None

        if event.error is None:
            self._pending = PendingConnect(
                ssid=event.ssid,
                active_path=event.outcome.active_path,
                was_saved=event.was_saved,
                from_password=event.from_password,
                password_supplied=event.password_supplied,
                hidden=event.hidden,
                security=event.security,
                profile_path=event.outcome.profile_path,
            )
            self._watcher.watch(event.ssid, event.outcome.active_path)
            return

        self._optimistic = None
        kind = classify(event.error)
        if is_credential_failure(kind):
            if event.password_supplied:
                self._failed.add(event.ssid)
                self._prompt = PasswordPrompt(event.ssid, INCORRECT_PASSWORD,
                                              event.hidden, event.security)
            else:
                self._prompt = PasswordPrompt(event.ssid, None, event.hidden, event.security)
            self._status = f'{event.ssid} requires a password'
        else:
            self._status = f'Could not connect to {event.ssid}: {event.error.message}'
        if not event.was_saved:
            self._cleanup(event.ssid)
        self._reload()

    def _on_active_state_changed(self, event: ActiveStateChanged) -> None:
        pending = self._pending
        if pending is None or pending.ssid != event.ssid or pending.active_path != event.path:
            logger.debug('Ignoring state %s for %s', event.state.name, event.ssid)
            return

        if event.state == ActiveState.ACTIVATED:
            self._clear_attempt()
            self._failed.discard(event.ssid)
            self._prompt = None
            self._status = f'Connected to {event.ssid}'
            self._reload()
        elif event.state == ActiveState.DEACTIVATED:
            self._clear_attempt()
            if pending.hidden:
                secure = pending.security not in (None, 'none')
            else:
                network = self._snapshot.find(event.ssid)
                secure = network is not None and network.is_secure
            if pending.password_supplied or secure:
                self._failed.add(event.ssid)
                self._prompt = PasswordPrompt(
                    event.ssid,
                    INCORRECT_PASSWORD if pending.password_supplied else 'Authentication failed',
                    pending.hidden, pending.security)
            detail = f': {event.error}' if event.error else ''
            self._status = f'Could not connect to {event.ssid}{detail}'
            if not pending.was_saved:
                self._cleanup(event.ssid, pending.profile_path)
            self._reload()
        elif event.state == ActiveState.ACTIVATING:
            self._status = f'Connecting to {event.ssid}...'

    def _on_disconnect_done(self, event: DisconnectDone) -> None:
        if event.error is not None:
            self._status = f'Could not disconnect {event.ssid}: {event.error.message}'
        else:
            self._status = f'Disconnected from {event.ssid}'
        self._reload()

    def _on_forget_done(self, event: ForgetDone) -> None:
        if event.cleanup:
            self._cleaning.discard(event.ssid)
            held = self._held.pop(event.ssid, None)
            if held is not None and self._connecting == event.ssid:
                logger.debug('Releasing held connect to %s', event.ssid)
                self._dispatcher.submit(held)
            if event.error is not None:
                logger.warning('Could not remove profile for %s: %s',
                               event.ssid, event.error.message)
                return
        elif event.error is not None:
            self._status = f'Could not forget {event.ssid}: {event.error.message}'
            return
        else:
            self._status = f'Forgot {event.ssid}'
        self._reload()

    def _on_state_loaded(self, event: StateLoaded) -> None:
        if event.error is not None:
            self._status = f'Could not load networks: {event.error.message}'
            return
        snapshot = event.state
        self._snapshot = snapshot
        if not snapshot.wifi_enabled:
            self._clear_attempt()
            return
        active = snapshot.active_ssid
        if self._pending is not None and active == self._pending.ssid:
            self._failed.discard(self._pending.ssid)
            self._pending = None
            self._optimistic = None
        if self._optimistic is not None:
            if active == self._optimistic or (self._connecting is None and self._pending is None):
                self._optimistic = None

    def _on_refresh_requested(self, event: RefreshRequested) -> None:
        self._request_refresh(event.reason)

    def _request_refresh(self, reason: str) -> None:
        if self._debouncing:
            logger.debug('Refresh (%s) folded into pending reload', reason)
            return
        self._debouncing = True
        self._schedule(self._settings.debounce_seconds,
                       lambda: self._events.put(DebounceElapsed()))

    def _on_debounce_elapsed(self, event: DebounceElapsed) -> None:
        self._reload()
        self._debouncing = False

    def _on_details_loaded(self, event: DetailsLoaded) -> None:
        self._details_revision += 1
        if event.error is not None:
            self._status = f'Could not load details for {event.ssid}: {event.error.message}'
            return
        self._details = event.details

    def _on_settings_saved(self, event: SettingsSaved) -> None:
        if event.error is not None:
            self._status = f'Could not save settings for {event.ssid}: {event.error.message}'
            return
        self._status = f'Settings saved for {event.ssid}'
        self._dispatcher.submit(ops.LoadDetails(event.ssid))

    def _on_password_revealed(self, event: PasswordRevealed) -> None:
        self._password_revision += 1
        if event.error is not None:
            self._status = f'Could not read password for {event.ssid}: {event.error.message}'
            return
        self._revealed = event.password
        if event.password is None:
            self._status = f'No password saved for {event.ssid}'

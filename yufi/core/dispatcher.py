"""YuFi - Background task dispatcher.

Every state-changing operation runs on its own daemon thread so that
the interactive surface never blocks on the bus.  Each operation ends in
exactly one completion event on the shared event channel, whether the
backend call succeeded or failed.
"""

import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Optional, Tuple

from ..errors import BackendError
from ..models import build_app_state
from .events import (
    ConnectDone,
    DetailsLoaded,
    DisconnectDone,
    ForgetDone,
    PasswordRevealed,
    ScanDone,
    SettingsSaved,
    StateLoaded,
    WifiToggled,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RequestScan:
    pass


@dataclass(frozen=True)
class SetRadioEnabled:
    enabled: bool


@dataclass(frozen=True)
class Connect:
    ssid: str
    password: Optional[str] = field(default=None, repr=False)
    from_password: bool = False


@dataclass(frozen=True)
class Disconnect:
    ssid: str


@dataclass(frozen=True)
class ConnectHidden:
    ssid: str
    security: str
    password: Optional[str] = field(default=None, repr=False)


@dataclass(frozen=True)
class ReloadState:
    pass


@dataclass(frozen=True)
class ForgetProfile:
    ssid: str
    cleanup: bool = False
    # Delete only this profile object instead of every profile for ssid
    profile_path: Optional[str] = None


@dataclass(frozen=True)
class LoadDetails:
    ssid: str


@dataclass(frozen=True)
class SaveSettings:
    ssid: str
    ip: Optional[str] = None
    prefix: Optional[int] = None
    gateway: Optional[str] = None
    dns: Optional[Tuple[str, ...]] = None
    auto_reconnect: Optional[bool] = None


@dataclass(frozen=True)
class RevealPassword:
    ssid: str


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class TaskDispatcher:
    """Runs operations against a backend on worker threads.

    Args:
        backend: A BackendInterface implementation.
        events: Channel that receives one completion event per operation.
    """

    def __init__(self, backend, events: queue.Queue):
        self._backend = backend
        self._events = events
        self._handlers = {
            RequestScan: self._run_request_scan,
            SetRadioEnabled: self._run_set_radio_enabled,
            Connect: self._run_connect,
            Disconnect: self._run_disconnect,
            ConnectHidden: self._run_connect_hidden,
            ReloadState: self._run_reload_state,
            ForgetProfile: self._run_forget_profile,
            LoadDetails: self._run_load_details,
            SaveSettings: self._run_save_settings,
            RevealPassword: self._run_reveal_password,
        }

    def submit(self, operation) -> None:
        """Start *operation* on a new daemon thread.

        Raises:
            TypeError: If *operation* is not a known operation type.
        """
        handler = self._handlers.get(type(operation))
        if handler is None:
            raise TypeError(f'Unknown operation: {operation!r}')
        logger.debug('Dispatching %r', operation)

        def _worker():
            try:
                event = handler(operation)
            except BackendError as e:
                event = self._failure(operation, e)
            except Exception as e:
                logger.exception('Unexpected error in %r', operation)
                event = self._failure(operation, BackendError(f'service unavailable: {e}'))
            if getattr(event, 'error', None) is not None:
                logger.warning('%s failed: %s', type(operation).__name__, event.error.message)
            else:
                logger.debug('Completed %r', operation)
            self._events.put(event)

        thread = threading.Thread(target=_worker, daemon=True,
                                  name=f'yufi-{type(operation).__name__}')
        thread.start()

    @staticmethod
    def _failure(operation, error: BackendError):
        """Build the completion event reporting *error* for *operation*."""
        if isinstance(operation, RequestScan):
            return ScanDone(error=error)
        if isinstance(operation, SetRadioEnabled):
            return WifiToggled(operation.enabled, error=error)
        if isinstance(operation, Connect):
            # was_saved unknown: assume saved so no profile is deleted
            return ConnectDone(operation.ssid, from_password=operation.from_password,
                               password_supplied=bool(operation.password),
                               was_saved=True, error=error)
        if isinstance(operation, ConnectHidden):
            return ConnectDone(operation.ssid, password_supplied=bool(operation.password),
                               hidden=True, security=operation.security,
                               was_saved=True, error=error)
        if isinstance(operation, Disconnect):
            return DisconnectDone(operation.ssid, error=error)
        if isinstance(operation, ReloadState):
            return StateLoaded(error=error)
        if isinstance(operation, ForgetProfile):
            return ForgetDone(operation.ssid, cleanup=operation.cleanup, error=error)
        if isinstance(operation, LoadDetails):
            return DetailsLoaded(operation.ssid, error=error)
        if isinstance(operation, SaveSettings):
            return SettingsSaved(operation.ssid, error=error)
        return PasswordRevealed(operation.ssid, error=error)

    # -- Handlers ------------------------------------------------------------

    def _run_request_scan(self, op: RequestScan) -> ScanDone:
        self._backend.request_scan()
        return ScanDone()

    def _run_set_radio_enabled(self, op: SetRadioEnabled) -> WifiToggled:
        self._backend.set_wireless_enabled(op.enabled)
        return WifiToggled(op.enabled)

    def _run_connect(self, op: Connect) -> ConnectDone:
        was_saved = True
        try:
            was_saved = self._backend.has_saved_profile(op.ssid)
            outcome = self._backend.connect_network(op.ssid, op.password)
        except BackendError as e:
            return ConnectDone(op.ssid, from_password=op.from_password,
                               password_supplied=bool(op.password),
                               was_saved=was_saved, error=e)
        return ConnectDone(op.ssid, from_password=op.from_password,
                           password_supplied=bool(op.password),
                           was_saved=outcome.was_saved, outcome=outcome)

    def _run_connect_hidden(self, op: ConnectHidden) -> ConnectDone:
        was_saved = True
        try:
            was_saved = self._backend.has_saved_profile(op.ssid)
            outcome = self._backend.connect_hidden(op.ssid, op.security, op.password)
        except BackendError as e:
            return ConnectDone(op.ssid, password_supplied=bool(op.password), hidden=True,
                               security=op.security, was_saved=was_saved, error=e)
        return ConnectDone(op.ssid, password_supplied=bool(op.password), hidden=True,
                           security=op.security, was_saved=outcome.was_saved,
                           outcome=outcome)

    def _run_disconnect(self, op: Disconnect) -> DisconnectDone:
        self._backend.disconnect_network(op.ssid)
        return DisconnectDone(op.ssid)

    def _run_reload_state(self, op: ReloadState) -> StateLoaded:
        enabled = self._backend.is_wireless_enabled()
        sightings = self._backend.list_access_points() if enabled else []
        saved = self._backend.list_saved_ssids()
        return StateLoaded(build_app_state(enabled, sightings, saved))

    def _run_forget_profile(self, op: ForgetProfile) -> ForgetDone:
        if op.profile_path:
            self._backend.delete_profile(op.profile_path)
        else:
            self._backend.forget_network(op.ssid)
        return ForgetDone(op.ssid, cleanup=op.cleanup)

    def _run_load_details(self, op: LoadDetails) -> DetailsLoaded:
        return DetailsLoaded(op.ssid, details=self._backend.get_network_details(op.ssid))

    def _run_save_settings(self, op: SaveSettings) -> SettingsSaved:
        self._backend.set_ip_dns(op.ssid, op.ip, op.prefix, op.gateway, op.dns)
        if op.auto_reconnect is not None:
            self._backend.set_autoreconnect(op.ssid, op.auto_reconnect)
        return SettingsSaved(op.ssid)

    def _run_reveal_password(self, op: RevealPassword) -> PasswordRevealed:
        return PasswordRevealed(op.ssid, password=self._backend.get_saved_password(op.ssid))

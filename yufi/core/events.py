"""YuFi - Completion and notification events.

Workers, watchers and the change listener never touch orchestrator
state; they put one of these immutable records on the event channel
and the reconciler applies it.
"""

from dataclasses import dataclass
from typing import Optional

from ..errors import BackendError
from ..models import ActiveState, AppState, ConnectOutcome, NetworkDetails


@dataclass(frozen=True)
class ScanDone:
    error: Optional[BackendError] = None


@dataclass(frozen=True)
class WifiToggled:
    enabled: bool
    error: Optional[BackendError] = None


@dataclass(frozen=True)
class ConnectDone:
    """Result of a Connect or ConnectHidden operation."""
    ssid: str
    from_password: bool = False
    password_supplied: bool = False
    hidden: bool = False
    security: Optional[str] = None
    was_saved: bool = False
    outcome: Optional[ConnectOutcome] = None
    error: Optional[BackendError] = None


@dataclass(frozen=True)
class DisconnectDone:
    ssid: str
    error: Optional[BackendError] = None


@dataclass(frozen=True)
class ForgetDone:
    """Result of a ForgetProfile; ``cleanup`` marks automatic deletions."""
    ssid: str
    cleanup: bool = False
    error: Optional[BackendError] = None


@dataclass(frozen=True)
class StateLoaded:
    state: Optional[AppState] = None
    error: Optional[BackendError] = None


@dataclass(frozen=True)
class ActiveStateChanged:
    ssid: str
    state: ActiveState
    path: str
    error: Optional[str] = None


@dataclass(frozen=True)
class RefreshRequested:
    reason: str = ''


@dataclass(frozen=True)
class DebounceElapsed:
    pass


@dataclass(frozen=True)
class DetailsLoaded:
    ssid: str
    details: Optional[NetworkDetails] = None
    error: Optional[BackendError] = None


@dataclass(frozen=True)
class SettingsSaved:
    ssid: str
    error: Optional[BackendError] = None


@dataclass(frozen=True)
class PasswordRevealed:
    ssid: str
    password: Optional[str] = None
    error: Optional[BackendError] = None

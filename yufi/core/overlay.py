"""YuFi - Optimistic overlay and display rows.

The overlay is the part of the published view that is not confirmed by
the service yet: the attempt in flight, the SSID the UI should already
show as connecting, recent credential failures and the password prompt.
:func:`display_rows` folds it over a confirmed snapshot.
"""

from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional

from ..models import AppState, NetworkAction, NetworkDetails, base_action

STATE_CONNECTED = 'connected'
STATE_CONNECTING = 'connecting'
STATE_FAILED = 'failed'


@dataclass(frozen=True)
class PendingConnect:
    """The activation attempt currently being watched."""
    ssid: str
    active_path: str
    was_saved: bool = False
    from_password: bool = False
    password_supplied: bool = False
    hidden: bool = False
    security: Optional[str] = None
    profile_path: Optional[str] = None


@dataclass(frozen=True)
class PasswordPrompt:
    """Request for the front-end to ask for a password.

    ``error`` is an inline message such as "Incorrect password", or None
    on the first prompt.
    """
    ssid: str
    error: Optional[str] = None
    hidden: bool = False
    security: Optional[str] = None


@dataclass(frozen=True)
class Overlay:
    pending: Optional[PendingConnect] = None
    optimistic_active_ssid: Optional[str] = None
    failed_connects: FrozenSet[str] = frozenset()
    prompt: Optional[PasswordPrompt] = None
    status: str = ''
    scanning: bool = False
    details: Optional[NetworkDetails] = None
    revealed_password: Optional[str] = None
    # Bumped on every details or password result, failed ones included
    details_revision: int = 0
    password_revision: int = 0

    @property
    def connecting_ssid(self) -> Optional[str]:
        if self.optimistic_active_ssid:
            return self.optimistic_active_ssid
        return self.pending.ssid if self.pending else None


@dataclass(frozen=True)
class NetworkRow:
    """One network as the UI should draw it right now."""
    ssid: str
    strength: int
    signal_icon: str
    is_secure: bool
    is_saved: bool
    state: Optional[str]
    action: NetworkAction


def display_rows(snapshot: AppState, overlay: Overlay) -> List[NetworkRow]:
    """Merge a confirmed snapshot with the overlay, keeping snapshot order."""
    connecting = overlay.connecting_ssid if snapshot.wifi_enabled else None
    rows = []
    for network in snapshot.networks:
        if not snapshot.wifi_enabled:
            state = None
            action = NetworkAction.NONE
        elif network.ssid == connecting and not network.is_active:
            state = STATE_CONNECTING
            action = NetworkAction.DISCONNECT
        elif network.is_active and (connecting is None or connecting == network.ssid):
            state = STATE_CONNECTED
            action = NetworkAction.DISCONNECT
        elif network.ssid in overlay.failed_connects:
            state = STATE_FAILED
            action = NetworkAction.CONNECT
        else:
            # Includes an active network that is being replaced
            state = None
            action = base_action(snapshot.wifi_enabled, False)
        rows.append(NetworkRow(
            ssid=network.ssid,
            strength=network.strength,
            signal_icon=network.signal_icon,
            is_secure=network.is_secure,
            is_saved=network.is_saved,
            state=state,
            action=action,
        ))
    return rows


def filter_rows(rows: Iterable[NetworkRow], query: Optional[str]) -> List[NetworkRow]:
    """Keep rows whose SSID contains *query*, ignoring case."""
    needle = (query or '').strip().casefold()
    if not needle:
        return list(rows)
    return [row for row in rows if needle in row.ssid.casefold()]

"""YuFi - Data model for networks, snapshots and profile details.

A :class:`AppState` is the confirmed view of the radio and its networks.
It is only ever produced by :func:`build_app_state` from a full reload
and is never modified afterwards.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Dict, Iterable, List, Optional, Set, Tuple


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Inclusive upper bounds of strength classes 0..3; anything above is 4
STRENGTH_CLASS_BOUNDS = (20, 40, 60, 80)

SIGNAL_ICONS = (
    'network-wireless-signal-none',
    'network-wireless-signal-weak',
    'network-wireless-signal-ok',
    'network-wireless-signal-good',
    'network-wireless-signal-excellent',
)


class NetworkAction(Enum):
    """Primary button offered for a network row."""
    NONE = 'none'
    CONNECT = 'connect'
    DISCONNECT = 'disconnect'


class ActiveState(IntEnum):
    """NetworkManager active-connection states (NM_ACTIVE_CONNECTION_STATE_*)."""
    UNKNOWN = 0
    ACTIVATING = 1
    ACTIVATED = 2
    DEACTIVATING = 3
    DEACTIVATED = 4

    @property
    def is_terminal(self) -> bool:
        return self in (ActiveState.ACTIVATED, ActiveState.DEACTIVATED)

    @classmethod
    def from_code(cls, code) -> 'ActiveState':
        """Map a raw integer to a state; unknown codes become UNKNOWN."""
        try:
            return cls(int(code))
        except (TypeError, ValueError):
            return cls.UNKNOWN


def strength_class(strength: int) -> int:
    """Return the display class 0..4 for a 0-100 signal strength."""
    for index, bound in enumerate(STRENGTH_CLASS_BOUNDS):
        if strength <= bound:
            return index
    return len(STRENGTH_CLASS_BOUNDS)


def signal_icon(strength: int) -> str:
    """Return the themed icon name for a signal strength."""
    return SIGNAL_ICONS[strength_class(strength)]


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AccessPointSighting:
    """One access point as reported by the service (several may share an SSID)."""
    ssid: str
    strength: int
    is_active: bool = False
    is_secure: bool = False


@dataclass(frozen=True)
class Network:
    """One SSID in a snapshot, after merging all of its sightings."""
    ssid: str
    strength: int
    is_active: bool = False
    is_saved: bool = False
    is_secure: bool = False
    action: NetworkAction = NetworkAction.CONNECT

    @property
    def strength_class(self) -> int:
        return strength_class(self.strength)

    @property
    def signal_icon(self) -> str:
        return signal_icon(self.strength)


@dataclass(frozen=True)
class AppState:
    """Confirmed snapshot: radio flag plus the ordered network list."""
    wifi_enabled: bool = False
    networks: Tuple[Network, ...] = ()

    def find(self, ssid: str) -> Optional[Network]:
        for network in self.networks:
            if network.ssid == ssid:
                return network
        return None

    @property
    def active_ssid(self) -> Optional[str]:
        for network in self.networks:
            if network.is_active:
                return network.ssid
        return None


@dataclass(frozen=True)
class NetworkDetails:
    """IPv4 and reconnect settings of a saved profile."""
    ssid: str = ''
    ip_address: Optional[str] = None
    prefix: Optional[int] = None
    gateway: Optional[str] = None
    dns_servers: Tuple[str, ...] = ()
    auto_reconnect: Optional[bool] = None

    @property
    def uses_dhcp(self) -> bool:
        return not self.ip_address


@dataclass(frozen=True)
class ConnectOutcome:
    """Result of a successful activation request.

    ``profile_path`` names the saved profile that was activated, or the
    one created for this attempt when ``was_saved`` is False.
    """
    active_path: str
    was_saved: bool
    profile_path: Optional[str] = None


# ---------------------------------------------------------------------------
# Merge and ordering
# ---------------------------------------------------------------------------

def _sighting_rank(sighting: AccessPointSighting) -> Tuple[bool, int]:
    # Activity dominates strength
    return (sighting.is_active, sighting.strength)


def merge_sightings(sightings: Iterable[AccessPointSighting]) -> Dict[str, AccessPointSighting]:
    """Keep the best sighting per SSID.

    An active sighting outranks every inactive one regardless of
    strength; otherwise the stronger sighting wins.  The merged entry is
    marked secure if any sighting of that SSID is secured.
    """
    best: Dict[str, AccessPointSighting] = {}
    secure: Set[str] = set()
    for sighting in sightings:
        if not sighting.ssid:
            continue
        if sighting.is_secure:
            secure.add(sighting.ssid)
        current = best.get(sighting.ssid)
        if current is None or _sighting_rank(sighting) > _sighting_rank(current):
            best[sighting.ssid] = sighting
    return {
        ssid: AccessPointSighting(
            ssid=ssid,
            strength=s.strength,
            is_active=s.is_active,
            is_secure=ssid in secure,
        )
        for ssid, s in best.items()
    }


def network_sort_key(network: Network) -> Tuple[bool, int, str]:
    """Active first, then strongest first, then SSID ascending."""
    return (not network.is_active, -network.strength, network.ssid)


def base_action(wifi_enabled: bool, is_active: bool) -> NetworkAction:
    if not wifi_enabled:
        return NetworkAction.NONE
    if is_active:
        return NetworkAction.DISCONNECT
    return NetworkAction.CONNECT


def build_app_state(wifi_enabled: bool,
                    sightings: Iterable[AccessPointSighting],
                    saved_ssids: Iterable[str] = ()) -> AppState:
    """Build a snapshot from raw sightings.

    Args:
        wifi_enabled: Radio state reported by the service.
        sightings: Every visible access point, duplicates included.
        saved_ssids: SSIDs that have a saved profile.

    Returns:
        A new, ordered AppState.
    """
    saved = set(saved_ssids)
    networks: List[Network] = []
    for ssid, sighting in merge_sightings(sightings).items():
        networks.append(Network(
            ssid=ssid,
            strength=max(0, min(100, int(sighting.strength))),
            is_active=sighting.is_active,
            is_saved=ssid in saved,
            is_secure=sighting.is_secure,
            action=base_action(wifi_enabled, sighting.is_active),
        ))
    networks.sort(key=network_sort_key)
    return AppState(wifi_enabled=wifi_enabled, networks=tuple(networks))

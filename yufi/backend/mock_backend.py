"""YuFi - Mock backend.

Provides an in-memory implementation of :class:`BackendInterface` that
simulates a single Wi-Fi adapter: a fixed set of access points, saved
profiles with passwords, activation that succeeds or fails depending on
the password, and change notifications for every mutation.  Used when
NetworkManager is not reachable and by the test-suite.
"""

import itertools
import queue
import threading
import time
from dataclasses import dataclass, replace
from typing import Dict, Iterator, List, Optional, Sequence, Set

from ..errors import BackendError, FailureKind
from ..models import AccessPointSighting, ActiveState, ConnectOutcome, NetworkDetails
from .interfaces import HIDDEN_SECURITY_TYPES, BackendInterface

ACTIVE_PATH_PREFIX = "/org/freedesktop/NetworkManager/ActiveConnection/"
PROFILE_PATH_PREFIX = "/org/freedesktop/NetworkManager/Settings/"


@dataclass
class MockProfile:
    """A saved profile held by the mock."""

    ssid: str
    password: Optional[str] = None
    autoconnect: bool = True
    hidden: bool = False
    ip_address: Optional[str] = None
    prefix: Optional[int] = None
    gateway: Optional[str] = None
    dns: Sequence[str] = ()
    path: Optional[str] = None


def default_access_points() -> List[AccessPointSighting]:
    """Return the demo access points (Office_Main is seen twice)."""
    return [
        AccessPointSighting("Home_Fiber_5G", 90, is_secure=True),
        AccessPointSighting("Office_Main", 60, is_secure=True),
        AccessPointSighting("Office_Main", 40, is_secure=True),
        AccessPointSighting("Coffee_Shop_Free", 55),
        AccessPointSighting("Guest_Network", 48, is_secure=True),
        AccessPointSighting("Linksys_502", 15),
    ]


def default_profiles() -> List[MockProfile]:
    return [
        MockProfile("Home_Fiber_5G", password="fiber-home-5g"),
        MockProfile("Office_Main", password="office-main-2024", autoconnect=False),
    ]


# Networks the mock will accept a password for: ssid -> correct password
DEFAULT_PASSWORDS = {
    "Home_Fiber_5G": "fiber-home-5g",
    "Office_Main": "office-main-2024",
    "Guest_Network": "hunter2",
    "Lab_Hidden": "lab-secret",
}

# Hidden networks that are in range: ssid -> security
DEFAULT_HIDDEN = {
    "Lab_Hidden": "wpa-psk",
}

# Strength reported for a hidden network once it is connected
HIDDEN_STRENGTH = 70


class MockBackend(BackendInterface):
    """Mock implementation for development and unit testing.

    Args:
        access_points: Visible sightings (defaults to the demo set).
        profiles: Saved profiles (defaults to Home_Fiber_5G and Office_Main).
        passwords: Correct password per secured SSID.
        hidden: Hidden networks in range, ssid -> security.
        active_ssid: SSID connected at start.
        step_delay: Seconds between simulated activation steps.
    """

    name = "mock"

    def __init__(self, access_points=None, profiles=None, passwords=None,
                 hidden=None, active_ssid: Optional[str] = "Home_Fiber_5G",
                 wifi_enabled: bool = True, step_delay: float = 0.4):
        self._lock = threading.Lock()
        self._access_points = list(
            default_access_points() if access_points is None else access_points)
        self._profile_counter = itertools.count(1)
        profiles = default_profiles() if profiles is None else profiles
        self._profiles: Dict[str, MockProfile] = {p.ssid: self._with_path(p) for p in profiles}
        self._passwords = dict(DEFAULT_PASSWORDS if passwords is None else passwords)
        self._hidden = dict(DEFAULT_HIDDEN if hidden is None else hidden)
        self._enabled = wifi_enabled
        self._active_ssid = active_ssid if wifi_enabled else None
        self._step_delay = step_delay
        self._counter = itertools.count(1)
        # active path -> [ssid, remaining states, current state]
        self._activations: Dict[str, list] = {}
        self._notifications: "queue.Queue[str]" = queue.Queue()
        # Open change_notifications() streams
        self._listeners = 0
        self.scan_count = 0

    # -- Helpers -------------------------------------------------------------

    def _notify(self, reason: str) -> None:
        if self._listeners:
            self._notifications.put(reason)

    def _with_path(self, profile: MockProfile) -> MockProfile:
        if profile.path is None:
            profile.path = f"{PROFILE_PATH_PREFIX}{next(self._profile_counter)}"
        return profile

    def _visible(self, ssid: str) -> List[AccessPointSighting]:
        return [ap for ap in self._access_points if ap.ssid == ssid]

    def _is_secure(self, ssid: str) -> bool:
        if ssid in self._hidden:
            return self._hidden[ssid] != "none"
        return any(ap.is_secure for ap in self._visible(ssid))

    def _profile(self, ssid: str) -> MockProfile:
        profile = self._profiles.get(ssid)
        if profile is None:
            raise BackendError(f"No saved connection for '{ssid}'", FailureKind.NOT_FOUND)
        return profile

    def _start_activation(self, ssid: str, reachable: bool) -> str:
        path = f"{ACTIVE_PATH_PREFIX}{next(self._counter)}"
        profile = self._profiles[ssid]
        correct = self._passwords.get(ssid)
        ok = reachable and (not self._is_secure(ssid) or profile.password == correct)
        final = ActiveState.ACTIVATED if ok else ActiveState.DEACTIVATED
        self._activations[path] = [ssid, [final], ActiveState.ACTIVATING]
        return path

    def _require_enabled(self) -> None:
        if not self._enabled:
            raise BackendError("Wi-Fi is disabled")

    # -- State ---------------------------------------------------------------

    def is_wireless_enabled(self) -> bool:
        with self._lock:
            return self._enabled

    def list_access_points(self) -> List[AccessPointSighting]:
        with self._lock:
            if not self._enabled:
                return []
            sightings = [replace(ap, is_active=ap.ssid == self._active_ssid)
                         for ap in self._access_points]
            active = self._active_ssid
            if active in self._hidden and not self._visible(active):
                # The adapter reports the SSID of a hidden AP once associated
                sightings.append(AccessPointSighting(
                    active, HIDDEN_STRENGTH, is_active=True, is_secure=self._is_secure(active)))
            return sightings

    def list_saved_ssids(self) -> Set[str]:
        with self._lock:
            return set(self._profiles)

    # -- Radio ---------------------------------------------------------------

    def set_wireless_enabled(self, enabled: bool) -> None:
        with self._lock:
            self._enabled = enabled
            if not enabled:
                self._active_ssid = None
        self._notify("WirelessEnabled")

    def request_scan(self) -> None:
        with self._lock:
            self._require_enabled()
            self.scan_count += 1
        self._notify("LastScan")

    # -- Connections ---------------------------------------------------------

    def connect_network(self, ssid: str, password: Optional[str] = None) -> ConnectOutcome:
        with self._lock:
            self._require_enabled()
            if not self._visible(ssid):
                raise BackendError(f"No network with SSID '{ssid}' found",
                                   FailureKind.NOT_FOUND)
            was_saved = ssid in self._profiles
            secure = self._is_secure(ssid)
            if was_saved:
                if password:
                    self._profiles[ssid].password = password
            else:
                if secure and not password:
                    raise BackendError("Secrets were required, but not provided",
                                       FailureKind.NEEDS_SECRETS)
                self._profiles[ssid] = self._with_path(
                    MockProfile(ssid, password=password if secure else None))
            if secure and not self._profiles[ssid].password:
                raise BackendError("Secrets were required, but not provided",
                                   FailureKind.NEEDS_SECRETS)
            path = self._start_activation(ssid, reachable=True)
            profile_path = self._profiles[ssid].path
        self._notify("ActiveConnections")
        return ConnectOutcome(active_path=path, was_saved=was_saved, profile_path=profile_path)

    def connect_hidden(self, ssid: str, security: str,
                       password: Optional[str] = None) -> ConnectOutcome:
        if security not in HIDDEN_SECURITY_TYPES:
            raise BackendError(f"Unsupported security type '{security}'")
        with self._lock:
            self._require_enabled()
            was_saved = ssid in self._profiles
            if not was_saved:
                if security != "none" and not password:
                    raise BackendError("Secrets were required, but not provided",
                                       FailureKind.NEEDS_SECRETS)
                self._profiles[ssid] = self._with_path(MockProfile(
                    ssid, password=password if security != "none" else None, hidden=True))
            elif password:
                self._profiles[ssid].password = password
            reachable = self._hidden.get(ssid) == security
            path = self._start_activation(ssid, reachable=reachable)
            profile_path = self._profiles[ssid].path
        self._notify("ActiveConnections")
        return ConnectOutcome(active_path=path, was_saved=was_saved, profile_path=profile_path)

    def disconnect_network(self, ssid: str) -> None:
        with self._lock:
            if self._active_ssid != ssid:
                raise BackendError(f"'{ssid}' is not connected", FailureKind.NOT_FOUND)
            self._active_ssid = None
        self._notify("ActiveConnections")

    def forget_network(self, ssid: str) -> None:
        with self._lock:
            self._profile(ssid)
            del self._profiles[ssid]
            if self._active_ssid == ssid:
                self._active_ssid = None
        self._notify("Connections")

    def delete_profile(self, profile_path: str) -> None:
        with self._lock:
            for ssid, profile in self._profiles.items():
                if profile.path == profile_path:
                    break
            else:
                raise BackendError(f"Unknown connection {profile_path}",
                                   FailureKind.NOT_FOUND)
            del self._profiles[ssid]
            if self._active_ssid == ssid:
                self._active_ssid = None
        self._notify("Connections")

    # -- Active connections --------------------------------------------------

    def get_active_state(self, active_path: str) -> ActiveState:
        with self._lock:
            activation = self._activations.get(active_path)
            if activation is None:
                raise BackendError(f"Unknown active connection {active_path}",
                                   FailureKind.NOT_FOUND)
            state = activation[2]
            if state.is_terminal:
                # Observed terminal attempts are dropped
                del self._activations[active_path]
            return state

    def active_state_changes(self, active_path: str,
                             timeout: float) -> Iterator[ActiveState]:
        deadline = time.monotonic() + timeout
        while True:
            with self._lock:
                activation = self._activations.get(active_path)
                if activation is None:
                    raise BackendError(f"Unknown active connection {active_path}",
                                       FailureKind.NOT_FOUND)
                if not activation[1]:
                    return
            if time.monotonic() > deadline:
                raise BackendError("Timed out waiting for the connection to activate")
            if self._step_delay:
                time.sleep(self._step_delay)
            with self._lock:
                ssid, remaining, _ = activation
                state = remaining.pop(0)
                activation[2] = state
                if state == ActiveState.ACTIVATED:
                    self._active_ssid = ssid
                if state.is_terminal:
                    del self._activations[active_path]
            self._notify("ActiveConnections")
            yield state
            if state.is_terminal:
                return

    def change_notifications(self, idle_timeout: float = 0.5) -> Iterator[Optional[str]]:
        with self._lock:
            self._listeners += 1
        try:
            while True:
                try:
                    yield self._notifications.get(timeout=idle_timeout)
                except queue.Empty:
                    yield None
        finally:
            with self._lock:
                self._listeners -= 1

    # -- Profiles ------------------------------------------------------------

    def get_network_details(self, ssid: str) -> NetworkDetails:
        with self._lock:
            profile = self._profile(ssid)
            return NetworkDetails(
                ssid=ssid,
                ip_address=profile.ip_address,
                prefix=profile.prefix,
                gateway=profile.gateway,
                dns_servers=tuple(profile.dns),
                auto_reconnect=profile.autoconnect,
            )

    def set_ip_dns(self, ssid: str, ip: Optional[str], prefix: Optional[int],
                   gateway: Optional[str], dns: Optional[Sequence[str]]) -> None:
        with self._lock:
            profile = self._profile(ssid)
            if ip:
                profile.ip_address = ip
                profile.prefix = prefix if prefix is not None else 24
                profile.gateway = gateway or None
            else:
                profile.ip_address = None
                profile.prefix = None
                profile.gateway = None
            if dns is not None:
                profile.dns = tuple(dns)
        self._notify("Connections")

    def set_autoreconnect(self, ssid: str, enabled: bool) -> None:
        with self._lock:
            self._profile(ssid).autoconnect = enabled
        self._notify("Connections")

    def get_saved_password(self, ssid: str) -> Optional[str]:
        with self._lock:
            return self._profile(ssid).password

    # -- Test helpers --------------------------------------------------------

    def add_access_point(self, sighting: AccessPointSighting) -> None:
        """Manually add a sighting for testing."""
        with self._lock:
            self._access_points.append(sighting)
        self._notify("AccessPoints")

    @property
    def active_ssid(self) -> Optional[str]:
        with self._lock:
            return self._active_ssid

"""YuFi - Abstract backend interface.

Defines the contract every remote service client fulfils, so the
orchestrator can run against NetworkManager or the in-memory mock
without knowing which one it has.  All methods are synchronous and
blocking; call them from worker threads only.  Failures raise
:class:`yufi.errors.BackendError`.
"""

from abc import ABC, abstractmethod
from typing import Iterator, List, Optional, Sequence, Set

from ..models import AccessPointSighting, ActiveState, ConnectOutcome, NetworkDetails

HIDDEN_SECURITY_TYPES = ("none", "wpa-psk", "sae", "wep")


class BackendInterface(ABC):
    """Abstract interface for remote Wi-Fi service operations."""

    name = "abstract"

    # -- State -------------------------------------------------------------

    @abstractmethod
    def is_wireless_enabled(self) -> bool:
        """Return the radio-enabled flag."""

    @abstractmethod
    def list_access_points(self) -> List[AccessPointSighting]:
        """Return every visible access point, duplicates included."""

    @abstractmethod
    def list_saved_ssids(self) -> Set[str]:
        """Return the SSIDs that have a saved Wi-Fi profile."""

    def has_saved_profile(self, ssid: str) -> bool:
        """Check if a saved profile exists for *ssid*."""
        return ssid in self.list_saved_ssids()

    # -- Radio -------------------------------------------------------------

    @abstractmethod
    def set_wireless_enabled(self, enabled: bool) -> None:
        """Turn the radio on or off."""

    @abstractmethod
    def request_scan(self) -> None:
        """Ask the wireless device to rescan."""

    # -- Connections -------------------------------------------------------

    @abstractmethod
    def connect_network(self, ssid: str, password: Optional[str] = None) -> ConnectOutcome:
        """Activate a visible network, creating a profile if needed."""

    @abstractmethod
    def connect_hidden(self, ssid: str, security: str,
                       password: Optional[str] = None) -> ConnectOutcome:
        """Activate a non-broadcasting network."""

    @abstractmethod
    def disconnect_network(self, ssid: str) -> None:
        """Deactivate the active connection of *ssid*."""

    @abstractmethod
    def forget_network(self, ssid: str) -> None:
        """Delete every saved profile of *ssid*."""

    @abstractmethod
    def delete_profile(self, profile_path: str) -> None:
        """Delete one saved profile by path."""

    # -- Active connections ------------------------------------------------

    @abstractmethod
    def get_active_state(self, active_path: str) -> ActiveState:
        """Read the current state of an active connection."""

    @abstractmethod
    def active_state_changes(self, active_path: str,
                             timeout: float) -> Iterator[ActiveState]:
        """Yield the active connection's state after each change notification.

        The iterator blocks between notifications and raises BackendError
        if nothing terminal is observed within *timeout* seconds.  Close
        it to drop the subscription.
        """

    @abstractmethod
    def change_notifications(self, idle_timeout: float = 0.5) -> Iterator[Optional[str]]:
        """Yield a short reason string for every relevant service change.

        Yields None when *idle_timeout* seconds pass without a change so
        the consumer can check whether it should stop.
        """

    # -- Profiles ----------------------------------------------------------

    @abstractmethod
    def get_network_details(self, ssid: str) -> NetworkDetails:
        """Read IPv4 and auto-reconnect settings of a saved profile."""

    @abstractmethod
    def set_ip_dns(self, ssid: str, ip: Optional[str], prefix: Optional[int],
                   gateway: Optional[str], dns: Optional[Sequence[str]]) -> None:
        """Write IPv4 settings; ``ip=None`` reverts to DHCP."""

    @abstractmethod
    def set_autoreconnect(self, ssid: str, enabled: bool) -> None:
        """Set the profile's autoconnect flag."""

    @abstractmethod
    def get_saved_password(self, ssid: str) -> Optional[str]:
        """Return the stored PSK/WEP key, or None for open networks."""

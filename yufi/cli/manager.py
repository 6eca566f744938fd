"""YuFi CLI - Synchronous wrapper around the reconciler, without GTK."""

from typing import Callable, List, Optional, Tuple

from ..backend import create_backend
from ..config import Settings, load_settings
from ..core import (
    CancelPrompt,
    Connect,
    ConnectHidden,
    Disconnect,
    Forget,
    LoadDetails,
    NetworkRow,
    PasswordPrompt,
    Reconciler,
    Reload,
    RequestScan,
    RevealPassword,
    ToggleWifi,
    display_rows,
)
from ..models import NetworkDetails

# Password prompts answered per connect() call
MAX_PASSWORD_ATTEMPTS = 3

AskPassword = Callable[[PasswordPrompt], Optional[str]]


class WiFiManager:
    """WiFi management with the orchestrator driven from the calling thread.

    This class provides blocking methods for scripts and headless
    environments.  Each call submits an intent and drains the event
    channel until the outcome is visible.

    Args:
        backend: BackendInterface to use; chosen by the factory if None.
        settings: Runtime settings; loaded from file/environment if None.
    """

    def __init__(self, backend=None, settings: Optional[Settings] = None):
        self._settings = settings or load_settings()
        self._backend = backend or create_backend(self._settings)
        self._reconciler = Reconciler(self._backend, self._settings)
        self._call_timeout = self._settings.call_timeout_ms / 1000.0
        self._reconciler.start(listen=False)
        self._wait_for_reload(self._reconciler.snapshot)

    @property
    def backend_name(self) -> str:
        return self._backend.name

    @property
    def last_status(self) -> str:
        """Status message of the most recent operation."""
        return self._reconciler.overlay.status

    # -- Helpers -------------------------------------------------------------

    def _wait(self, predicate, timeout: Optional[float] = None) -> bool:
        return self._reconciler.run_until(predicate, timeout or self._call_timeout)

    def _wait_for_reload(self, before) -> bool:
        return self._wait(lambda snapshot, _: snapshot is not before)

    def _submit(self, intent) -> None:
        self._reconciler.submit_intent(intent)

    @staticmethod
    def _settled(_, overlay) -> bool:
        # In-progress status messages end with an ellipsis
        return not overlay.status.endswith('...')

    # -- State ---------------------------------------------------------------

    def reload(self) -> bool:
        """Fetch a fresh snapshot; False if the service did not answer."""
        before = self._reconciler.snapshot
        self._submit(Reload())
        return self._wait_for_reload(before)

    def is_wifi_enabled(self) -> bool:
        return self._reconciler.snapshot.wifi_enabled

    def get_connected_ssid(self) -> Optional[str]:
        return self._reconciler.snapshot.active_ssid

    def get_networks(self) -> List[NetworkRow]:
        """Rows of the current snapshot with the overlay applied."""
        return display_rows(self._reconciler.snapshot, self._reconciler.overlay)

    def get_saved_networks(self) -> List[str]:
        return sorted(n.ssid for n in self._reconciler.snapshot.networks if n.is_saved)

    # -- Radio ---------------------------------------------------------------

    def scan(self) -> List[NetworkRow]:
        """Request a scan, wait for it, and return the refreshed rows."""
        self._submit(RequestScan())
        self._wait(lambda _, overlay: not overlay.scanning)
        self.reload()
        return self.get_networks()

    def set_enabled(self, enabled: bool) -> bool:
        self._submit(ToggleWifi(enabled))
        self._wait(self._settled)
        self.reload()
        return self.is_wifi_enabled() == enabled

    # -- Connections ---------------------------------------------------------

    def _attempt_finished(self, _, overlay) -> bool:
        return overlay.pending is None and overlay.optimistic_active_ssid is None

    def _run_attempt(self, ssid: str, first_intent, retry: Callable[[str], object],
                     ask_password: Optional[AskPassword]) -> Tuple[bool, str]:
        self._submit(first_intent)
        attempts = 0
        while True:
            if not self._wait(self._attempt_finished, self._settings.activation_timeout_s):
                return False, f'Timed out connecting to {ssid}'
            prompt = self._reconciler.overlay.prompt
            if prompt is None or prompt.ssid != ssid:
                break
            password = None
            if ask_password is not None and attempts < MAX_PASSWORD_ATTEMPTS:
                password = ask_password(prompt)
            if not password:
                self._submit(CancelPrompt())
                self._reconciler.drain()
                return False, self.last_status
            attempts += 1
            self._submit(retry(password))
        status = self.last_status
        self.reload()
        return self.get_connected_ssid() == ssid, status

    def connect(self, ssid: str, password: Optional[str] = None,
                ask_password: Optional[AskPassword] = None) -> Tuple[bool, str]:
        """Connect to a visible network.

        Args:
            ssid: Network SSID.
            password: Network password (None for open or saved networks).
            ask_password: Called with the PasswordPrompt when the service
                needs a password; returns the password or None to give up.

        Returns:
            (connected, status message).
        """
        return self._run_attempt(
            ssid, Connect(ssid, password),
            lambda secret: Connect(ssid, secret, from_password=True),
            ask_password)

    def connect_hidden(self, ssid: str, security: str, password: Optional[str] = None,
                       ask_password: Optional[AskPassword] = None) -> Tuple[bool, str]:
        return self._run_attempt(
            ssid, ConnectHidden(ssid, security, password),
            lambda secret: ConnectHidden(ssid, security, secret),
            ask_password)

    def disconnect(self, ssid: Optional[str] = None) -> Tuple[bool, str]:
        """Disconnect *ssid*, or the active network if None."""
        ssid = ssid or self.get_connected_ssid()
        if not ssid:
            return False, 'Not connected'
        self._submit(Disconnect(ssid))
        self._wait(self._settled)
        status = self.last_status
        self.reload()
        return self.get_connected_ssid() != ssid, status

    def forget(self, ssid: str) -> Tuple[bool, str]:
        self._submit(Forget(ssid))
        self._wait(self._settled)
        status = self.last_status
        self.reload()
        return ssid not in self.get_saved_networks(), status

    # -- Profiles ------------------------------------------------------------

    def get_details(self, ssid: str) -> Optional[NetworkDetails]:
        before = self._reconciler.overlay.details_revision
        self._submit(LoadDetails(ssid))
        self._wait(lambda _, overlay: overlay.details_revision != before)
        details = self._reconciler.overlay.details
        return details if details is not None and details.ssid == ssid else None

    def get_password(self, ssid: str) -> Optional[str]:
        before = self._reconciler.overlay.password_revision
        self._submit(RevealPassword(ssid))
        self._wait(lambda _, overlay: overlay.password_revision != before)
        return self._reconciler.overlay.revealed_password

"""YuFi - NetworkManager backend.

Implements :class:`BackendInterface` on top of NetworkManager's D-Bus
API.  The bus object is injected so that the logic here can be
exercised without a system bus; in production it is a
:class:`~yufi.backend.dbus_client.GioBus`.
"""

import logging
import time
from contextlib import closing
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple

from ..errors import BackendError, FailureKind
from ..models import AccessPointSighting, ActiveState, ConnectOutcome, NetworkDetails
from .interfaces import HIDDEN_SECURITY_TYPES, BackendInterface
from .nm_schema import (
    ACTIVE_INTERFACE,
    AP_FLAGS_PRIVACY,
    AP_INTERFACE,
    CONNECTION_INTERFACE,
    DEVICE_INTERFACE,
    DEVICE_TYPE_WIFI,
    DEVICE_WATCHED_PROPERTIES,
    MANAGER_WATCHED_PROPERTIES,
    NM_INTERFACE,
    NO_OBJECT,
    OBJECT_PATH,
    PROPERTIES_INTERFACE,
    SECURITY_SECTION,
    SETTINGS_INTERFACE,
    SETTINGS_PATH,
    WIFI_DEVICE_INTERFACE,
    WIRELESS_TYPE,
    Settings,
    TypedValue,
    decode_ssid,
    new_wifi_profile,
    plain,
)

logger = logging.getLogger(__name__)

# NM_802_11_AP_SEC_KEY_MGMT_*
KEY_MGMT_PSK = 0x100
KEY_MGMT_SAE = 0x400

DEFAULT_PREFIX = 24

SETTINGS_SIGNATURE = 'a{sa{sv}}'


def _bare(value):
    return value.value if isinstance(value, TypedValue) else value


def _security_for(flags: int, wpa_flags: int, rsn_flags: int) -> str:
    """Pick the key management for a new profile from AP flags."""
    if rsn_flags & KEY_MGMT_SAE and not rsn_flags & KEY_MGMT_PSK:
        return 'sae'
    if wpa_flags or rsn_flags:
        return 'wpa-psk'
    if flags & AP_FLAGS_PRIVACY:
        return 'wep'
    return 'none'


def _missing_secrets(ssid: str) -> BackendError:
    return BackendError(f"Secrets were required for '{ssid}', but not provided",
                        FailureKind.NEEDS_SECRETS)


class NetworkManagerBackend(BackendInterface):
    """Backend talking to NetworkManager over the system bus.

    Args:
        bus: Object with ``call``/``get_property``/``get_all_properties``/
            ``set_property``/``signals``; a GioBus is created if None.
        timeout_ms: Call timeout used when creating the GioBus.
    """

    name = "networkmanager"

    def __init__(self, bus=None, timeout_ms: int = 25000):
        if bus is None:
            from .dbus_client import GioBus
            bus = GioBus(timeout_ms=timeout_ms)
        self._bus = bus

    # -- Object lookup -------------------------------------------------------

    def _wifi_device(self) -> str:
        devices = self._bus.call(OBJECT_PATH, NM_INTERFACE, 'GetDevices')[0]
        for path in devices:
            if self._bus.get_property(path, DEVICE_INTERFACE, 'DeviceType') == DEVICE_TYPE_WIFI:
                return path
        raise BackendError('No Wi-Fi device found', FailureKind.NO_WIFI_DEVICE)

    def _access_points(self, device: str) -> List[Tuple[str, dict]]:
        """Return (path, properties) for every AP the device can see."""
        result = []
        paths = self._bus.call(device, WIFI_DEVICE_INTERFACE, 'GetAccessPoints')[0]
        for path in paths:
            try:
                result.append((path, self._bus.get_all_properties(path, AP_INTERFACE)))
            except BackendError as e:
                # APs come and go between the two calls
                logger.debug('Skipping access point %s: %s', path, e.message)
        return result

    def _find_access_point(self, device: str, ssid: str) -> Optional[Tuple[str, dict]]:
        best = None
        for path, props in self._access_points(device):
            if decode_ssid(props.get('Ssid')) != ssid:
                continue
            if best is None or props.get('Strength', 0) > best[1].get('Strength', 0):
                best = (path, props)
        return best

    def _get_settings(self, path: str) -> Settings:
        return self._bus.call(path, CONNECTION_INTERFACE, 'GetSettings', typed=True)[0]

    def _wifi_profiles(self) -> Iterator[Tuple[str, Settings]]:
        paths = self._bus.call(SETTINGS_PATH, SETTINGS_INTERFACE, 'ListConnections')[0]
        for path in paths:
            try:
                settings = self._get_settings(path)
            except BackendError as e:
                logger.debug('Skipping connection %s: %s', path, e.message)
                continue
            if plain(settings, 'connection', 'type') == WIRELESS_TYPE:
                yield path, settings

    @staticmethod
    def _profile_ssid(settings: Settings) -> str:
        raw = plain(settings, WIRELESS_TYPE, 'ssid')
        if raw:
            return decode_ssid(raw)
        return plain(settings, 'connection', 'id', '')

    def _profiles_for(self, ssid: str) -> List[Tuple[str, Settings]]:
        return [(path, settings) for path, settings in self._wifi_profiles()
                if self._profile_ssid(settings) == ssid]

    def _profile_for(self, ssid: str) -> Tuple[str, Settings]:
        profiles = self._profiles_for(ssid)
        if not profiles:
            raise BackendError(f"No saved connection for '{ssid}'", FailureKind.NOT_FOUND)
        return profiles[0]

    def _update(self, path: str, settings: Settings) -> None:
        """Write *settings* back, keeping stored secrets."""
        if SECURITY_SECTION in settings:
            try:
                secrets = self._bus.call(path, CONNECTION_INTERFACE, 'GetSecrets',
                                         (SECURITY_SECTION,), 's', typed=True)[0]
            except BackendError as e:
                logger.debug('No secrets to merge for %s: %s', path, e.message)
            else:
                section = dict(settings[SECURITY_SECTION])
                for key, value in secrets.get(SECURITY_SECTION, {}).items():
                    section.setdefault(key, value)
                settings = dict(settings)
                settings[SECURITY_SECTION] = section
        self._bus.call(path, CONNECTION_INTERFACE, 'Update', (settings,), SETTINGS_SIGNATURE)

    def _store_password(self, path: str, settings: Settings, password: str) -> None:
        section = dict(settings.get(SECURITY_SECTION, {}))
        key_mgmt = _bare(section.get('key-mgmt')) or 'wpa-psk'
        section['key-mgmt'] = TypedValue('s', key_mgmt)
        section['wep-key0' if key_mgmt == 'none' else 'psk'] = TypedValue('s', password)
        settings = dict(settings)
        settings[SECURITY_SECTION] = section
        self._update(path, settings)

    def _activate(self, profile: str, device: str, ap: str) -> str:
        return self._bus.call(OBJECT_PATH, NM_INTERFACE, 'ActivateConnection',
                              (profile, device, ap), 'ooo')[0]

    def _add_and_activate(self, settings: Settings, device: str, ap: str) -> Tuple[str, str]:
        """Return (profile path, active connection path)."""
        reply = self._bus.call(OBJECT_PATH, NM_INTERFACE, 'AddAndActivateConnection',
                               (settings, device, ap), SETTINGS_SIGNATURE + 'oo')
        return reply[0], reply[1]

    # -- State ---------------------------------------------------------------

    def is_wireless_enabled(self) -> bool:
        return bool(self._bus.get_property(OBJECT_PATH, NM_INTERFACE, 'WirelessEnabled'))

    def list_access_points(self) -> List[AccessPointSighting]:
        device = self._wifi_device()
        active = self._bus.get_property(device, WIFI_DEVICE_INTERFACE, 'ActiveAccessPoint')
        sightings = []
        for path, props in self._access_points(device):
            secure = (_security_for(props.get('Flags', 0), props.get('WpaFlags', 0),
                                    props.get('RsnFlags', 0)) != 'none')
            sightings.append(AccessPointSighting(
                ssid=decode_ssid(props.get('Ssid')),
                strength=int(props.get('Strength', 0)),
                is_active=active not in (None, NO_OBJECT) and path == active,
                is_secure=secure,
            ))
        return sightings

    def list_saved_ssids(self) -> Set[str]:
        return {self._profile_ssid(settings) for _, settings in self._wifi_profiles()}

    # -- Radio ---------------------------------------------------------------

    def set_wireless_enabled(self, enabled: bool) -> None:
        self._bus.set_property(OBJECT_PATH, NM_INTERFACE, 'WirelessEnabled',
                               TypedValue('b', bool(enabled)))

    def request_scan(self) -> None:
        device = self._wifi_device()
        self._bus.call(device, WIFI_DEVICE_INTERFACE, 'RequestScan', ({},), 'a{sv}')

    # -- Connections ---------------------------------------------------------

    def connect_network(self, ssid: str, password: Optional[str] = None) -> ConnectOutcome:
        device = self._wifi_device()
        found = self._find_access_point(device, ssid)
        if found is None:
            raise BackendError(f"No network with SSID '{ssid}' found", FailureKind.NOT_FOUND)
        ap, props = found

        profiles = self._profiles_for(ssid)
        if profiles:
            path, settings = profiles[0]
            if password:
                self._store_password(path, settings, password)
            logger.info('Activating saved profile for %s', ssid)
            return ConnectOutcome(self._activate(path, device, ap), was_saved=True,
                                  profile_path=path)

        security = _security_for(props.get('Flags', 0), props.get('WpaFlags', 0),
                                 props.get('RsnFlags', 0))
        if security != 'none' and not password:
            raise _missing_secrets(ssid)
        logger.info('Creating profile for %s (%s)', ssid, security)
        profile = new_wifi_profile(ssid, security, password)
        profile_path, active = self._add_and_activate(profile, device, ap)
        return ConnectOutcome(active, was_saved=False, profile_path=profile_path)

    def connect_hidden(self, ssid: str, security: str,
                       password: Optional[str] = None) -> ConnectOutcome:
        if security not in HIDDEN_SECURITY_TYPES:
            raise BackendError(f"Unsupported security type '{security}'")
        device = self._wifi_device()
        profiles = self._profiles_for(ssid)
        if profiles:
            path, settings = profiles[0]
            if password:
                self._store_password(path, settings, password)
            return ConnectOutcome(self._activate(path, device, NO_OBJECT), was_saved=True,
                                  profile_path=path)
        if security != 'none' and not password:
            raise _missing_secrets(ssid)
        logger.info('Creating hidden profile for %s (%s)', ssid, security)
        profile = new_wifi_profile(ssid, security, password, hidden=True)
        profile_path, active = self._add_and_activate(profile, device, NO_OBJECT)
        return ConnectOutcome(active, was_saved=False, profile_path=profile_path)

    def disconnect_network(self, ssid: str) -> None:
        profiles = {path for path, _ in self._profiles_for(ssid)}
        actives = self._bus.get_property(OBJECT_PATH, NM_INTERFACE, 'ActiveConnections')
        for active in actives:
            if self._bus.get_property(active, ACTIVE_INTERFACE, 'Connection') in profiles:
                self._bus.call(OBJECT_PATH, NM_INTERFACE, 'DeactivateConnection',
                               (active,), 'o')
                return
        raise BackendError(f"'{ssid}' is not connected", FailureKind.NOT_FOUND)

    def forget_network(self, ssid: str) -> None:
        profiles = self._profiles_for(ssid)
        if not profiles:
            raise BackendError(f"No saved connection for '{ssid}'", FailureKind.NOT_FOUND)
        for path, _ in profiles:
            self._bus.call(path, CONNECTION_INTERFACE, 'Delete')

    def delete_profile(self, profile_path: str) -> None:
        self._bus.call(profile_path, CONNECTION_INTERFACE, 'Delete')

    # -- Active connections --------------------------------------------------

    def get_active_state(self, active_path: str) -> ActiveState:
        return ActiveState.from_code(
            self._bus.get_property(active_path, ACTIVE_INTERFACE, 'State'))

    def _poll_active_state(self, active_path: str) -> ActiveState:
        try:
            return self.get_active_state(active_path)
        except BackendError as e:
            if e.kind is FailureKind.NOT_FOUND:
                # The object is removed once the connection is torn down
                return ActiveState.DEACTIVATED
            raise

    def active_state_changes(self, active_path: str,
                             timeout: float) -> Iterator[ActiveState]:
        deadline = time.monotonic() + timeout
        matches = [
            (active_path, PROPERTIES_INTERFACE, 'PropertiesChanged'),
            (active_path, ACTIVE_INTERFACE, 'StateChanged'),
        ]
        last = None
        with closing(self._bus.signals(matches, idle_timeout=min(0.5, timeout))) as stream:
            for signal in stream:
                if signal is None:
                    # Catch changes that happened before the subscription
                    state = self._poll_active_state(active_path)
                else:
                    state = _state_from_signal(signal)
                if state is not None and state != last:
                    last = state
                    yield state
                    if state.is_terminal:
                        return
                if time.monotonic() > deadline:
                    raise BackendError('Timed out waiting for the connection to activate')

    def change_notifications(self, idle_timeout: float = 0.5) -> Iterator[Optional[str]]:
        device = self._wifi_device()
        matches = [
            (OBJECT_PATH, PROPERTIES_INTERFACE, 'PropertiesChanged'),
            (OBJECT_PATH, NM_INTERFACE, 'StateChanged'),
            (device, PROPERTIES_INTERFACE, 'PropertiesChanged'),
            (device, DEVICE_INTERFACE, 'StateChanged'),
            (device, WIFI_DEVICE_INTERFACE, 'AccessPointAdded'),
            (device, WIFI_DEVICE_INTERFACE, 'AccessPointRemoved'),
            (SETTINGS_PATH, SETTINGS_INTERFACE, 'NewConnection'),
            (SETTINGS_PATH, SETTINGS_INTERFACE, 'ConnectionRemoved'),
        ]
        with closing(self._bus.signals(matches, idle_timeout=idle_timeout)) as stream:
            for signal in stream:
                if signal is None:
                    yield None
                    continue
                reason = _change_reason(signal)
                if reason:
                    yield reason

    # -- Profiles ------------------------------------------------------------

    def get_network_details(self, ssid: str) -> NetworkDetails:
        _, settings = self._profile_for(ssid)
        ip_address = prefix = None
        addresses = plain(settings, 'ipv4', 'address-data') or []
        if addresses and plain(settings, 'ipv4', 'method') == 'manual':
            first = addresses[0]
            ip_address = _bare(first.get('address'))
            prefix = _bare(first.get('prefix'))
            prefix = int(prefix) if prefix is not None else None
        dns = []
        for entry in plain(settings, 'ipv4', 'dns-data') or []:
            # Older releases sent a list of {address: ...} dicts
            entry = _bare(entry)
            if isinstance(entry, dict):
                entry = _bare(entry.get('address'))
            if entry:
                dns.append(str(entry))
        return NetworkDetails(
            ssid=ssid,
            ip_address=ip_address,
            prefix=prefix,
            gateway=plain(settings, 'ipv4', 'gateway') or None,
            dns_servers=tuple(dns),
            auto_reconnect=bool(plain(settings, 'connection', 'autoconnect', True)),
        )

    def set_ip_dns(self, ssid: str, ip: Optional[str], prefix: Optional[int],
                   gateway: Optional[str], dns: Optional[Sequence[str]]) -> None:
        path, settings = self._profile_for(ssid)
        ipv4: Dict[str, TypedValue] = dict(settings.get('ipv4', {}))
        # Deprecated forms; NetworkManager prefers the *-data keys
        ipv4.pop('addresses', None)
        ipv4.pop('dns', None)
        if ip:
            ipv4['method'] = TypedValue('s', 'manual')
            ipv4['address-data'] = TypedValue('aa{sv}', [{
                'address': TypedValue('s', ip),
                'prefix': TypedValue('u', int(prefix) if prefix is not None else DEFAULT_PREFIX),
            }])
            if gateway:
                ipv4['gateway'] = TypedValue('s', gateway)
            else:
                ipv4.pop('gateway', None)
        else:
            ipv4['method'] = TypedValue('s', 'auto')
            ipv4.pop('address-data', None)
            ipv4.pop('gateway', None)
        if dns is not None:
            servers = [server for server in dns if server]
            if servers:
                ipv4['dns-data'] = TypedValue('as', servers)
                ipv4['ignore-auto-dns'] = TypedValue('b', True)
            else:
                ipv4.pop('dns-data', None)
                ipv4['ignore-auto-dns'] = TypedValue('b', False)
        settings = dict(settings)
        settings['ipv4'] = ipv4
        logger.info('Updating IPv4 settings of %s (%s)', ssid, 'manual' if ip else 'auto')
        self._update(path, settings)

    def set_autoreconnect(self, ssid: str, enabled: bool) -> None:
        path, settings = self._profile_for(ssid)
        connection = dict(settings.get('connection', {}))
        connection['autoconnect'] = TypedValue('b', bool(enabled))
        settings = dict(settings)
        settings['connection'] = connection
        self._update(path, settings)

    def get_saved_password(self, ssid: str) -> Optional[str]:
        path, settings = self._profile_for(ssid)
        if SECURITY_SECTION not in settings:
            return None
        secrets = self._bus.call(path, CONNECTION_INTERFACE, 'GetSecrets',
                                 (SECURITY_SECTION,), 's')[0]
        section = secrets.get(SECURITY_SECTION, {})
        return section.get('psk') or section.get('wep-key0') or None


# ---------------------------------------------------------------------------
# Signal helpers
# ---------------------------------------------------------------------------

def _state_from_signal(signal) -> Optional[ActiveState]:
    _, interface, member, args = signal
    if member == 'StateChanged':
        return ActiveState.from_code(args[0])
    if member == 'PropertiesChanged' and interface == PROPERTIES_INTERFACE:
        changed = args[1]
        if 'State' in changed:
            return ActiveState.from_code(changed['State'])
    return None


def _change_reason(signal) -> Optional[str]:
    """Return a reason string if *signal* makes the snapshot stale."""
    path, interface, member, args = signal
    if member != 'PropertiesChanged':
        return member
    names = set(args[1]) | set(args[2] if len(args) > 2 else ())
    watched = MANAGER_WATCHED_PROPERTIES if path == OBJECT_PATH else DEVICE_WATCHED_PROPERTIES
    hits = names & watched
    if not hits:
        return None
    return ','.join(sorted(hits))

"""YuFi - NetworkManager D-Bus names, codes and profile helpers.

Connection settings travel as ``a{sa{sv}}``.  Inside YuFi they are held
as ``{section: {key: TypedValue}}`` so that values read with
``GetSettings`` keep their D-Bus signature when written back with
``Update``.
"""

from collections import namedtuple
from typing import Dict, Optional

from ..errors import BackendError, FailureKind

BUS_NAME = "org.freedesktop.NetworkManager"
OBJECT_PATH = "/org/freedesktop/NetworkManager"
SETTINGS_PATH = "/org/freedesktop/NetworkManager/Settings"

NM_INTERFACE = "org.freedesktop.NetworkManager"
DEVICE_INTERFACE = "org.freedesktop.NetworkManager.Device"
WIFI_DEVICE_INTERFACE = "org.freedesktop.NetworkManager.Device.Wireless"
AP_INTERFACE = "org.freedesktop.NetworkManager.AccessPoint"
ACTIVE_INTERFACE = "org.freedesktop.NetworkManager.Connection.Active"
SETTINGS_INTERFACE = "org.freedesktop.NetworkManager.Settings"
CONNECTION_INTERFACE = "org.freedesktop.NetworkManager.Settings.Connection"
PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"

NO_OBJECT = "/"

# NM_DEVICE_TYPE_WIFI
DEVICE_TYPE_WIFI = 2

# NM_802_11_AP_FLAGS_PRIVACY
AP_FLAGS_PRIVACY = 0x1

WIRELESS_TYPE = "802-11-wireless"
SECURITY_SECTION = "802-11-wireless-security"

# D-Bus error name -> failure kind
ERROR_KINDS = {
    "org.freedesktop.NetworkManager.AgentManager.NoSecrets": FailureKind.NEEDS_SECRETS,
    "org.freedesktop.NetworkManager.Settings.Connection.MissingSecrets": FailureKind.NEEDS_SECRETS,
    "org.freedesktop.NetworkManager.AgentManager.UserCanceled": FailureKind.NEEDS_SECRETS,
    "org.freedesktop.NetworkManager.AgentManager.NoAgents": FailureKind.NO_SECRET_AGENT,
    "org.freedesktop.NetworkManager.UnknownDevice": FailureKind.NO_WIFI_DEVICE,
    "org.freedesktop.NetworkManager.PermissionDenied": FailureKind.PERMISSION_DENIED,
    "org.freedesktop.NetworkManager.Settings.PermissionDenied": FailureKind.PERMISSION_DENIED,
    "org.freedesktop.NetworkManager.Settings.Connection.PermissionDenied": FailureKind.PERMISSION_DENIED,
    "org.freedesktop.NetworkManager.UnknownConnection": FailureKind.NOT_FOUND,
    "org.freedesktop.NetworkManager.ConnectionNotActive": FailureKind.NOT_FOUND,
    "org.freedesktop.NetworkManager.Settings.InvalidConnection": FailureKind.NOT_FOUND,
    "org.freedesktop.DBus.Error.UnknownObject": FailureKind.NOT_FOUND,
    "org.freedesktop.DBus.Error.UnknownMethod": FailureKind.NOT_FOUND,
    "org.freedesktop.DBus.Error.AccessDenied": FailureKind.PERMISSION_DENIED,
}

# Manager / device properties whose change means the snapshot is stale
MANAGER_WATCHED_PROPERTIES = frozenset({
    "WirelessEnabled", "ActiveConnections", "PrimaryConnection",
})
DEVICE_WATCHED_PROPERTIES = frozenset({
    "AccessPoints", "ActiveAccessPoint", "ActiveConnection", "LastScan", "State",
})

TypedValue = namedtuple("TypedValue", "signature value")

Settings = Dict[str, Dict[str, TypedValue]]


def ssid_bytes(ssid: str) -> bytes:
    return ssid.encode("utf-8")


def decode_ssid(raw) -> str:
    """Decode an ``ay`` SSID; undecodable bytes are replaced."""
    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw
    return bytes(raw).decode("utf-8", errors="replace")


def security_section(security: str, password: Optional[str]) -> Optional[Dict[str, TypedValue]]:
    """Build the 802-11-wireless-security section for a security type.

    Returns None for open networks.
    """
    if security == "none":
        return None
    if security == "wep":
        section = {"key-mgmt": TypedValue("s", "none")}
        if password:
            section["wep-key0"] = TypedValue("s", password)
        return section
    section = {"key-mgmt": TypedValue("s", security)}
    if password:
        section["psk"] = TypedValue("s", password)
    return section


def new_wifi_profile(ssid: str, security: str = "wpa-psk",
                     password: Optional[str] = None, hidden: bool = False) -> Settings:
    """Build the settings of a new Wi-Fi profile for AddAndActivateConnection."""
    profile: Settings = {
        "connection": {
            "type": TypedValue("s", WIRELESS_TYPE),
            "id": TypedValue("s", ssid),
            "autoconnect": TypedValue("b", True),
        },
        WIRELESS_TYPE: {
            "ssid": TypedValue("ay", ssid_bytes(ssid)),
            "mode": TypedValue("s", "infrastructure"),
        },
    }
    if hidden:
        profile[WIRELESS_TYPE]["hidden"] = TypedValue("b", True)
    security_settings = security_section(security, password)
    if security_settings is not None:
        profile[SECURITY_SECTION] = security_settings
    return profile


def plain(settings: Settings, section: str, key: str, default=None):
    """Return the bare value of ``settings[section][key]``."""
    item = settings.get(section, {}).get(key)
    if item is None:
        return default
    return item.value if isinstance(item, TypedValue) else item


def error_for_name(name: Optional[str], message: str):
    """Build a BackendError whose kind comes from the D-Bus error *name*."""
    return BackendError(message, ERROR_KINDS.get(name, FailureKind.UNAVAILABLE))

"""YuFi - Connection orchestrator (no GTK dependencies)."""

from .intents import (
    CancelPrompt,
    Connect,
    ConnectHidden,
    Disconnect,
    Forget,
    LoadDetails,
    Reload,
    RequestScan,
    RevealPassword,
    SaveSettings,
    ToggleWifi,
)
from .overlay import NetworkRow, Overlay, PasswordPrompt, PendingConnect, display_rows, filter_rows
from .reconciler import Reconciler

__all__ = [
    'CancelPrompt',
    'Connect',
    'ConnectHidden',
    'Disconnect',
    'Forget',
    'LoadDetails',
    'Reload',
    'RequestScan',
    'RevealPassword',
    'SaveSettings',
    'ToggleWifi',
    'NetworkRow',
    'Overlay',
    'PasswordPrompt',
    'PendingConnect',
    'display_rows',
    'filter_rows',
    'Reconciler',
]

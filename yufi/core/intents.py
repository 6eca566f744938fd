"""YuFi - User intents accepted by the reconciler.

Front-ends describe what the user asked for with one of these frozen
records and hand it to :meth:`Reconciler.submit_intent`.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class ToggleWifi:
    enabled: bool


@dataclass(frozen=True)
class RequestScan:
    pass


@dataclass(frozen=True)
class Reload:
    pass


@dataclass(frozen=True)
class Connect:
    """Connect to a visible network.

    ``from_password`` is True when the password came from the prompt.
    """
    ssid: str
    password: Optional[str] = None
    from_password: bool = False


@dataclass(frozen=True)
class Disconnect:
    ssid: str


@dataclass(frozen=True)
class ConnectHidden:
    ssid: str
    security: str
    password: Optional[str] = None


@dataclass(frozen=True)
class Forget:
    ssid: str


@dataclass(frozen=True)
class CancelPrompt:
    pass


@dataclass(frozen=True)
class LoadDetails:
    ssid: str


@dataclass(frozen=True)
class SaveSettings:
    """Write IPv4/DNS and auto-reconnect settings of a saved profile.

    ``ip=None`` means DHCP; ``dns=None`` leaves DNS untouched.
    """
    ssid: str
    ip: Optional[str] = None
    prefix: Optional[int] = None
    gateway: Optional[str] = None
    dns: Optional[Tuple[str, ...]] = None
    auto_reconnect: Optional[bool] = None


@dataclass(frozen=True)
class RevealPassword:
    ssid: str


Intent = Union[ToggleWifi, RequestScan, Reload, Connect, Disconnect, ConnectHidden,
               Forget, CancelPrompt, LoadDetails, SaveSettings, RevealPassword]

"""YuFi - Error kinds and failure classification.

Every remote failure is raised as a single exception type,
:class:`BackendError`.  The NetworkManager client fills in ``kind`` from
the D-Bus error name whenever it recognises one; everything else arrives
as ``FailureKind.UNAVAILABLE`` with only a free-text message.
"""

from enum import Enum, auto
from typing import Optional


class FailureKind(Enum):
    """Coarse cause of a failed remote operation."""

    UNAVAILABLE = auto()
    NEEDS_SECRETS = auto()
    NO_SECRET_AGENT = auto()
    NO_WIFI_DEVICE = auto()
    PERMISSION_DENIED = auto()
    NOT_FOUND = auto()


class BackendError(Exception):
    """Raised by backend implementations when a remote call fails."""

    def __init__(self, message: str, kind: FailureKind = FailureKind.UNAVAILABLE):
        self.message = message
        self.kind = kind
        super().__init__(message)

    def __repr__(self) -> str:
        return f'BackendError({self.kind.name}, {self.message!r})'


# ---------------------------------------------------------------------------
# Fallback classification
# ---------------------------------------------------------------------------

# Fallback only: used when the service gave no structured error name.
# Free-text matching cannot tell "wrong password" apart from
# "access point out of range"; keep these lists short.
_SECRET_HINTS = (
    'secrets were required',
    'no secrets',
    'missing secrets',
    'password',
    'passphrase',
    'psk',
    '802-1x',
    'authentication',
)
_AGENT_HINTS = (
    'no agents',
    'no secret agent',
    'secret agent',
)
_DEVICE_HINTS = (
    'no wireless device',
    'no wifi device',
    'no wi-fi device',
    'unknown device',
)
_PERMISSION_HINTS = (
    'not authorized',
    'permission denied',
    'insufficient privileges',
)


def classify_message(message: Optional[str]) -> FailureKind:
    """Guess a failure kind from a free-text error message.

    Matching is case-insensitive substring search.  Agent hints are
    checked before secret hints because NetworkManager's "no agents"
    message also mentions secrets.
    """
    text = (message or '').lower()
    if any(hint in text for hint in _AGENT_HINTS):
        return FailureKind.NO_SECRET_AGENT
    if any(hint in text for hint in _SECRET_HINTS):
        return FailureKind.NEEDS_SECRETS
    if any(hint in text for hint in _DEVICE_HINTS):
        return FailureKind.NO_WIFI_DEVICE
    if any(hint in text for hint in _PERMISSION_HINTS):
        return FailureKind.PERMISSION_DENIED
    return FailureKind.UNAVAILABLE


def classify(error: Optional[BackendError]) -> Optional[FailureKind]:
    """Return the failure kind of *error*, or None if there is no error.

    A structured kind set by the backend always wins; the message is
    only inspected for plain ``UNAVAILABLE`` errors.
    """
    if error is None:
        return None
    if error.kind is not FailureKind.UNAVAILABLE:
        return error.kind
    return classify_message(error.message)


def is_credential_failure(kind: Optional[FailureKind]) -> bool:
    """True if *kind* means the user should be asked for a password."""
    return kind in (FailureKind.NEEDS_SECRETS, FailureKind.NO_SECRET_AGENT)

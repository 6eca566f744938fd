"""YuFi - Backend factory.

Factory pattern to create backend instances.
Enables dependency injection for testing.
"""

import logging
import os
from typing import Optional

from ..config import BACKEND_MOCK, Settings
from ..errors import BackendError
from .interfaces import BackendInterface

logger = logging.getLogger(__name__)


def create_backend(settings: Optional[Settings] = None) -> BackendInterface:
    """Create the backend selected by the settings.

    Environment:
        YUFI_BACKEND: 'networkmanager' (default) or 'mock'; overrides
        the value in *settings*.

    Returns:
        Backend instance implementing BackendInterface.  If the system
        bus or NetworkManager is unreachable, the mock is returned.
    """
    settings = settings or Settings()
    mode = os.environ.get("YUFI_BACKEND", settings.backend).strip().lower()

    if mode == BACKEND_MOCK:
        from .mock_backend import MockBackend

        logger.info("Using mock backend")
        return MockBackend()

    from .nm_backend import NetworkManagerBackend

    try:
        backend = NetworkManagerBackend(timeout_ms=settings.call_timeout_ms)
        backend.is_wireless_enabled()
    except BackendError as e:
        logger.warning("NetworkManager unavailable (%s); using mock backend", e.message)
        from .mock_backend import MockBackend

        return MockBackend()
    logger.info("Using NetworkManager backend")
    return backend

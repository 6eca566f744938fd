"""YuFi - Remote service clients."""

from .interfaces import BackendInterface
from .factory import create_backend

__all__ = ["BackendInterface", "create_backend"]

"""Command-line interface for yufi.

This module provides a CLI interface for WiFi management without requiring
a graphical environment. It drives the same orchestrator as the GTK app.
"""

from .manager import WiFiManager
from .command import main

__all__ = ['WiFiManager', 'main']

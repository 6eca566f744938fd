#!/usr/bin/env python3
"""YuFi - Entry point."""

import gi
gi.require_version('Gtk', '3.0')
from gi.repository import Gtk

from .app import WiFiApp
from .backend import create_backend
from .config import load_settings
from .logging_ import setup_logger


def main():
    """Launch the YuFi dashboard."""
    settings = load_settings()
    setup_logger(level=settings.log_level, log_file=settings.log_file)
    WiFiApp(create_backend(settings), settings)
    Gtk.main()


if __name__ == '__main__':
    main()

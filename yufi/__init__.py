"""YuFi - Wi-Fi connection orchestrator for NetworkManager.

A GTK3 dashboard and command line tool for viewing and controlling
Wi-Fi through NetworkManager's D-Bus API.

Usage:
    from yufi.backend import create_backend
    from yufi.core import Reconciler, Connect

    reconciler = Reconciler(create_backend())
    reconciler.subscribe(lambda snapshot, overlay: print(snapshot))
    reconciler.start()
    reconciler.submit_intent(Connect("MyNetwork", "password123"))
    reconciler.drain()
"""

__version__ = "1.0.0"
__app_id__ = "com.yufi.app"

__all__ = ['__version__', '__app_id__']

"""CLI entry point for yufi-cli."""

import getpass
import sys

from ..backend.interfaces import HIDDEN_SECURITY_TYPES
from ..config import load_settings
from ..errors import BackendError
from ..logging_ import setup_logger
from .manager import WiFiManager

USAGE = """Usage: yufi-cli <command> [args]

Commands:
  status                       Show radio and connection status
  list                         Show visible networks
  scan                         Scan and show visible networks
  on | off                     Turn the Wi-Fi radio on or off
  connect <ssid> [password]    Connect to a network
  disconnect [ssid]            Disconnect from a network
  hidden <ssid> <security> [password]
                               Connect to a hidden network
                               (security: none, wpa-psk, sae, wep)
  forget <ssid>                Remove a saved network
  details <ssid>               Show IP settings of a saved network
  password <ssid>              Show the saved password of a network"""


def _ask_password(prompt):
    if prompt.error:
        print(prompt.error)
    try:
        return getpass.getpass(f"Password for {prompt.ssid}: ")
    except (EOFError, KeyboardInterrupt):
        print()
        return None


def _print_networks(manager):
    rows = manager.get_networks()
    if not rows:
        print("No networks found")
        return
    print(f"Found {len(rows)} network(s):")
    for row in rows:
        flags = []
        if row.state:
            flags.append(row.state)
        if row.is_saved:
            flags.append("saved")
        lock = "secured" if row.is_secure else "open"
        suffix = f" [{', '.join(flags)}]" if flags else ""
        print(f"  - {row.ssid} ({row.strength}%) {lock}{suffix}")


def _require(argv, count, usage):
    if len(argv) < count:
        print(f"Usage: yufi-cli {usage}")
        sys.exit(1)


def main(argv=None):
    """CLI entry point."""
    argv = sys.argv[1:] if argv is None else argv
    if not argv or argv[0] in ("-h", "--help", "help"):
        print(USAGE)
        sys.exit(0)

    settings = load_settings()
    setup_logger(level=settings.log_level, log_file=settings.log_file)

    command = argv[0]
    try:
        manager = WiFiManager(settings=settings)
    except BackendError as e:
        print(f"Error: {e.message}")
        sys.exit(1)

    if command == "status":
        if not manager.is_wifi_enabled():
            print("Wi-Fi is off")
        else:
            ssid = manager.get_connected_ssid()
            print(f"Connected to: {ssid}" if ssid else "Not connected")

    elif command == "list":
        _print_networks(manager)

    elif command == "scan":
        print("Scanning for networks...")
        manager.scan()
        _print_networks(manager)

    elif command in ("on", "off"):
        enabled = command == "on"
        if manager.set_enabled(enabled):
            print("Wi-Fi enabled" if enabled else "Wi-Fi disabled")
        else:
            print(manager.last_status or "Failed to change Wi-Fi state")
            sys.exit(1)

    elif command == "connect":
        _require(argv, 2, "connect <ssid> [password]")
        password = argv[2] if len(argv) > 2 else None
        ok, status = manager.connect(argv[1], password, ask_password=_ask_password)
        print(status)
        if not ok:
            sys.exit(1)

    elif command == "hidden":
        _require(argv, 3, "hidden <ssid> <security> [password]")
        if argv[2] not in HIDDEN_SECURITY_TYPES:
            print(f"Unknown security type: {argv[2]}")
            sys.exit(1)
        password = argv[3] if len(argv) > 3 else None
        ok, status = manager.connect_hidden(argv[1], argv[2], password,
                                            ask_password=_ask_password)
        print(status)
        if not ok:
            sys.exit(1)

    elif command == "disconnect":
        ok, status = manager.disconnect(argv[1] if len(argv) > 1 else None)
        print(status)
        if not ok:
            sys.exit(1)

    elif command == "forget":
        _require(argv, 2, "forget <ssid>")
        ok, status = manager.forget(argv[1])
        print(status)
        if not ok:
            sys.exit(1)

    elif command == "details":
        _require(argv, 2, "details <ssid>")
        details = manager.get_details(argv[1])
        if details is None:
            print(manager.last_status or "No details available")
            sys.exit(1)
        print(f"SSID: {details.ssid}")
        if details.uses_dhcp:
            print("IP: automatic (DHCP)")
        else:
            print(f"IP: {details.ip_address}/{details.prefix}")
            print(f"Gateway: {details.gateway or '-'}")
        print(f"DNS: {', '.join(details.dns_servers) or 'automatic'}")
        print(f"Auto-reconnect: {'yes' if details.auto_reconnect else 'no'}")

    elif command == "password":
        _require(argv, 2, "password <ssid>")
        password = manager.get_password(argv[1])
        if password is None:
            print(manager.last_status or "No password saved")
            sys.exit(1)
        print(password)

    else:
        print(f"Unknown command: {command}")
        sys.exit(1)


if __name__ == "__main__":
    main()

"""YuFi - Nord theme CSS for GTK3.

Styles the dashboard window: network rows by connection state, signal
classes, the password prompt and the status bar.
"""

import gi
gi.require_version('Gtk', '3.0')
from gi.repository import Gtk, Gdk

# Nord Color Palette
NORD = {
    'nord0': '#2E3440',
    'nord1': '#3B4252',
    'nord2': '#434C5E',
    'nord3': '#4C566A',
    'nord4': '#D8DEE9',
    'nord6': '#ECEFF4',
    'nord8': '#88C0D0',
    'nord10': '#5E81AC',
    'nord11': '#BF616A',
    'nord12': '#D08770',
    'nord13': '#EBCB8B',
    'nord14': '#A3BE8C',
}

# Colour per signal strength class 0..4
SIGNAL_COLORS = ('nord11', 'nord12', 'nord13', 'nord8', 'nord14')

THEME_CSS = """
window, .background {
    background-color: """ + NORD['nord0'] + """;
    color: """ + NORD['nord4'] + """;
}

.header {
    background-color: """ + NORD['nord1'] + """;
    border-bottom: 1px solid """ + NORD['nord2'] + """;
    padding: 6px 12px;
}

.app-title {
    color: """ + NORD['nord6'] + """;
    font-weight: bold;
    font-size: 15px;
}

entry {
    background-color: """ + NORD['nord1'] + """;
    color: """ + NORD['nord6'] + """;
    border: 1px solid """ + NORD['nord3'] + """;
    border-radius: 4px;
    padding: 4px 8px;
}

entry:focus {
    border-color: """ + NORD['nord8'] + """;
}

button {
    background-image: none;
    background-color: """ + NORD['nord2'] + """;
    color: """ + NORD['nord6'] + """;
    border: 1px solid """ + NORD['nord3'] + """;
    border-radius: 4px;
    padding: 4px 12px;
}

button:hover {
    background-color: """ + NORD['nord3'] + """;
}

button.suggested-action {
    background-color: """ + NORD['nord10'] + """;
}

button.destructive-action {
    background-color: """ + NORD['nord11'] + """;
}

list, list row {
    background-color: """ + NORD['nord0'] + """;
}

list row:selected {
    background-color: """ + NORD['nord2'] + """;
}

.network-row {
    padding: 8px 12px;
    border-left: 3px solid transparent;
}

.network-row-connected {
    border-left-color: """ + NORD['nord14'] + """;
}

.network-row-connecting {
    border-left-color: """ + NORD['nord13'] + """;
}

.network-row-failed {
    border-left-color: """ + NORD['nord11'] + """;
}

.ssid-label {
    color: """ + NORD['nord6'] + """;
    font-weight: bold;
}

.caption {
    color: """ + NORD['nord4'] + """;
    font-size: 11px;
}

.detail-key {
    color: """ + NORD['nord8'] + """;
}

.prompt-error, .status-error {
    color: """ + NORD['nord11'] + """;
}

.status-connected {
    color: """ + NORD['nord14'] + """;
}

.status-connecting {
    color: """ + NORD['nord13'] + """;
}

.statusbar {
    background-color: """ + NORD['nord1'] + """;
    border-top: 1px solid """ + NORD['nord2'] + """;
    padding: 4px 12px;
}
""" + "".join(
    ".signal-%d { color: %s; }\n" % (index, NORD[name])
    for index, name in enumerate(SIGNAL_COLORS)
)


def apply_theme():
    """Install the Nord stylesheet on the default screen."""
    css_provider = Gtk.CssProvider()
    css_provider.load_from_data(THEME_CSS.encode('utf-8'))

    screen = Gdk.Screen.get_default()
    if screen is not None:
        Gtk.StyleContext.add_provider_for_screen(
            screen,
            css_provider,
            Gtk.STYLE_PROVIDER_PRIORITY_APPLICATION + 100
        )

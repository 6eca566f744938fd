"""YuFi - Main application window.

GTK3 dashboard over the connection orchestrator.  The window never talks
to the backend: it submits intents, drains the reconciler on a GLib
timer and redraws from the published ``(snapshot, overlay)`` pair.
"""

import gi
gi.require_version('Gtk', '3.0')
from gi.repository import Gtk, GLib, Pango

from . import __app_id__
from .backend.interfaces import HIDDEN_SECURITY_TYPES
from .config import Settings
from .core import (
    CancelPrompt,
    Connect,
    ConnectHidden,
    Disconnect,
    Forget,
    LoadDetails,
    Reconciler,
    RequestScan,
    RevealPassword,
    SaveSettings,
    ToggleWifi,
    display_rows,
    filter_rows,
)
from .core.overlay import STATE_CONNECTED, STATE_CONNECTING, STATE_FAILED
from .models import NetworkAction, strength_class
from .theme import apply_theme

WINDOW_TITLE = "YuFi Network Manager Dashboard"

# Ratio of left panel width to total paned width on initial layout
_PANED_POSITION_RATIO = 0.55

_STATE_LABELS = {
    STATE_CONNECTED: "Connected",
    STATE_CONNECTING: "Connecting…",
    STATE_FAILED: "Failed",
}


def parse_address(text):
    """Split "192.168.1.100/24" into ("192.168.1.100", 24).

    Returns:
        (address, prefix); prefix is None if not given.

    Raises:
        ValueError: If the prefix is not an integer in 0..32.
    """
    text = text.strip()
    if "/" not in text:
        return text, None
    address, prefix = text.split("/", 1)
    prefix = int(prefix)
    if not 0 <= prefix <= 32:
        raise ValueError(f"invalid prefix {prefix}")
    return address.strip(), prefix


class WiFiApp(Gtk.Window):
    """Main Wi-Fi dashboard window.

    Args:
        backend: BackendInterface the orchestrator drives.
        settings: Runtime settings (poll interval, timeouts).
    """

    def __init__(self, backend, settings=None):
        super().__init__(title=WINDOW_TITLE)
        self.set_wmclass(__app_id__, __app_id__)
        self.set_default_size(760, 560)
        self.set_position(Gtk.WindowPosition.CENTER)
        self.connect("destroy", self._on_destroy)

        self._settings = settings or Settings()
        self._reconciler = Reconciler(backend, self._settings)
        self._snapshot = self._reconciler.snapshot
        self._overlay = self._reconciler.overlay
        self._selected_ssid = None
        self._shown_prompt = None
        self._detail_key = None
        self._updating_switch = False

        apply_theme()
        self._build_ui()
        self.show_all()

        self._unsubscribe = self._reconciler.subscribe(self._on_view)
        self._reconciler.start()
        self._drain_id = GLib.timeout_add(self._settings.poll_interval_ms, self._drain)

    def _on_destroy(self, _window):
        if self._drain_id:
            GLib.source_remove(self._drain_id)
            self._drain_id = None
        self._unsubscribe()
        self._reconciler.stop()
        Gtk.main_quit()

    def _drain(self):
        self._reconciler.drain()
        return True  # Continue the timer

    # -- UI Construction ---------------------------------------------------

    def _build_ui(self):
        main_box = Gtk.Box(orientation=Gtk.Orientation.VERTICAL, spacing=0)
        self.add(main_box)

        main_box.pack_start(self._build_header(), False, False, 0)

        self._paned = Gtk.Paned(orientation=Gtk.Orientation.HORIZONTAL)
        self._paned_initial = True
        self._paned.connect('size-allocate', self._on_paned_allocate)
        main_box.pack_start(self._paned, True, True, 0)

        self._paned.pack1(self._build_network_panel(), True, False)
        self._paned.pack2(self._build_detail_panel(), True, False)

        main_box.pack_start(self._build_status_bar(), False, False, 0)

    def _build_header(self):
        header = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL, spacing=8)
        header.get_style_context().add_class("header")

        title = Gtk.Label(label="YuFi")
        title.get_style_context().add_class("app-title")
        header.pack_start(title, False, False, 0)

        self._search_entry = Gtk.SearchEntry()
        self._search_entry.set_placeholder_text("Search networks")
        self._search_entry.connect("search-changed", lambda _e: self._redraw_list())
        header.pack_start(self._search_entry, True, True, 0)

        self._scan_spinner = Gtk.Spinner()
        header.pack_end(self._scan_spinner, False, False, 0)

        self._scan_btn = Gtk.Button(label="Scan")
        self._scan_btn.connect("clicked", lambda _b: self._submit(RequestScan()))
        header.pack_end(self._scan_btn, False, False, 0)

        self._wifi_switch = Gtk.Switch()
        self._wifi_switch.set_valign(Gtk.Align.CENTER)
        self._wifi_switch.connect("notify::active", self._on_wifi_switch)
        header.pack_end(self._wifi_switch, False, False, 0)

        return header

    def _build_network_panel(self):
        panel = Gtk.Box(orientation=Gtk.Orientation.VERTICAL, spacing=0)

        scroll = Gtk.ScrolledWindow()
        scroll.set_policy(Gtk.PolicyType.NEVER, Gtk.PolicyType.AUTOMATIC)
        self._network_list = Gtk.ListBox()
        self._network_list.set_selection_mode(Gtk.SelectionMode.SINGLE)
        self._network_list.connect("row-selected", self._on_network_selected)
        scroll.add(self._network_list)
        panel.pack_start(scroll, True, True, 0)

        hidden_btn = Gtk.Button(label="Connect to hidden network…")
        hidden_btn.get_style_context().add_class("flat")
        hidden_btn.connect("clicked", self._on_hidden_network)
        panel.pack_start(hidden_btn, False, False, 4)

        return panel

    def _build_detail_panel(self):
        self._detail_stack = Gtk.Stack()
        self._detail_stack.set_transition_type(Gtk.StackTransitionType.CROSSFADE)

        empty = Gtk.Label(label="Select a network")
        self._detail_stack.add_named(empty, "empty")

        scroll = Gtk.ScrolledWindow()
        scroll.set_policy(Gtk.PolicyType.NEVER, Gtk.PolicyType.AUTOMATIC)
        self._detail_box = Gtk.Box(orientation=Gtk.Orientation.VERTICAL, spacing=8)
        self._detail_box.set_margin_start(12)
        self._detail_box.set_margin_end(12)
        self._detail_box.set_margin_top(8)
        self._detail_box.set_margin_bottom(8)
        scroll.add(self._detail_box)
        self._detail_stack.add_named(scroll, "details")

        self._detail_stack.set_visible_child_name("empty")
        return self._detail_stack

    def _build_status_bar(self):
        bar = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL, spacing=12)
        bar.get_style_context().add_class("statusbar")

        self._connection_label = Gtk.Label()
        bar.pack_start(self._connection_label, False, False, 0)

        self._status_label = Gtk.Label()
        self._status_label.set_halign(Gtk.Align.END)
        self._status_label.set_ellipsize(Pango.EllipsizeMode.END)
        bar.pack_end(self._status_label, True, True, 0)

        return bar

    def _on_paned_allocate(self, widget, allocation):
        if self._paned_initial and allocation.width > 1:
            self._paned.set_position(int(allocation.width * _PANED_POSITION_RATIO))
            self._paned_initial = False

    # -- View updates --------------------------------------------------------

    def _submit(self, intent):
        self._reconciler.submit_intent(intent)

    def _on_view(self, snapshot, overlay):
        """Subscriber callback: runs on the GTK thread from _drain()."""
        self._snapshot = snapshot
        self._overlay = overlay

        self._updating_switch = True
        self._wifi_switch.set_active(snapshot.wifi_enabled)
        self._updating_switch = False
        self._scan_btn.set_sensitive(snapshot.wifi_enabled and not overlay.scanning)
        if overlay.scanning:
            self._scan_spinner.start()
        else:
            self._scan_spinner.stop()

        self._redraw_list()
        self._update_status_bar()
        if self._selected_ssid:
            # Redrawing resets the advanced entries; only do it on change
            key = (self._row_for(self._selected_ssid), overlay.details,
                   overlay.revealed_password)
            if key != self._detail_key:
                self._show_network_details(self._selected_ssid)

        if overlay.prompt is not None and overlay.prompt != self._shown_prompt:
            self._shown_prompt = overlay.prompt
            # Leave the drain callback before running a modal dialog
            GLib.idle_add(self._show_password_dialog, overlay.prompt)
        elif overlay.prompt is None:
            self._shown_prompt = None

    def _current_rows(self):
        rows = display_rows(self._snapshot, self._overlay)
        return filter_rows(rows, self._search_entry.get_text())

    def _redraw_list(self):
        for child in self._network_list.get_children():
            self._network_list.remove(child)

        rows = self._current_rows()
        if not rows:
            text = "Wi-Fi is off" if not self._snapshot.wifi_enabled else "No networks found"
            label = Gtk.Label(label=text)
            label.set_margin_top(20)
            row = Gtk.ListBoxRow()
            row.add(label)
            row.ssid = None
            self._network_list.add(row)
            self._network_list.show_all()
            return

        for network_row in rows:
            row = self._create_network_row(network_row)
            self._network_list.add(row)
            if network_row.ssid == self._selected_ssid:
                self._network_list.select_row(row)
        self._network_list.show_all()

    def _create_network_row(self, network):
        row = Gtk.ListBoxRow()
        row.ssid = network.ssid
        row.get_style_context().add_class("network-row")
        if network.state:
            row.get_style_context().add_class(f"network-row-{network.state}")

        hbox = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL, spacing=8)

        icon = Gtk.Image.new_from_icon_name(network.signal_icon, Gtk.IconSize.BUTTON)
        icon.get_style_context().add_class(f"signal-{strength_class(network.strength)}")
        hbox.pack_start(icon, False, False, 4)

        vbox = Gtk.Box(orientation=Gtk.Orientation.VERTICAL, spacing=2)
        ssid_label = Gtk.Label(label=network.ssid)
        ssid_label.set_halign(Gtk.Align.START)
        ssid_label.set_ellipsize(Pango.EllipsizeMode.END)
        ssid_label.get_style_context().add_class("ssid-label")
        vbox.pack_start(ssid_label, False, False, 0)

        caption = ["Secured" if network.is_secure else "Open"]
        if network.is_saved:
            caption.append("saved")
        caption_label = Gtk.Label(label=", ".join(caption))
        caption_label.set_halign(Gtk.Align.START)
        caption_label.get_style_context().add_class("caption")
        vbox.pack_start(caption_label, False, False, 0)
        hbox.pack_start(vbox, True, True, 0)

        if network.state:
            state_label = Gtk.Label(label=_STATE_LABELS[network.state])
            state_label.get_style_context().add_class(f"status-{network.state}")
            hbox.pack_end(state_label, False, False, 4)

        pct_label = Gtk.Label(label=f"{network.strength}%")
        pct_label.get_style_context().add_class("caption")
        hbox.pack_end(pct_label, False, False, 4)

        row.add(hbox)
        return row

    def _update_status_bar(self):
        ctx = self._connection_label.get_style_context()
        for cls in ("status-connected", "status-connecting", "status-error"):
            ctx.remove_class(cls)
        connecting = self._overlay.connecting_ssid
        if not self._snapshot.wifi_enabled:
            self._connection_label.set_text("Wi-Fi off")
        elif connecting:
            self._connection_label.set_text(f"Connecting to {connecting}…")
            ctx.add_class("status-connecting")
        elif self._snapshot.active_ssid:
            self._connection_label.set_text(f"Connected: {self._snapshot.active_ssid}")
            ctx.add_class("status-connected")
        else:
            self._connection_label.set_text("Disconnected")
        self._status_label.set_text(self._overlay.status)

    # -- Detail Panel --------------------------------------------------------

    def _row_for(self, ssid):
        for row in display_rows(self._snapshot, self._overlay):
            if row.ssid == ssid:
                return row
        return None

    def _add_grid_rows(self, items):
        grid = Gtk.Grid()
        grid.set_column_spacing(12)
        grid.set_row_spacing(6)
        for index, (key, value) in enumerate(items):
            k_lbl = Gtk.Label(label=key)
            k_lbl.set_halign(Gtk.Align.START)
            k_lbl.get_style_context().add_class("detail-key")
            v_lbl = Gtk.Label(label=value)
            v_lbl.set_halign(Gtk.Align.START)
            v_lbl.set_selectable(True)
            grid.attach(k_lbl, 0, index, 1, 1)
            grid.attach(v_lbl, 1, index, 1, 1)
        self._detail_box.pack_start(grid, False, False, 0)

    def _show_network_details(self, ssid):
        self._detail_key = (self._row_for(ssid), self._overlay.details,
                            self._overlay.revealed_password)
        for child in self._detail_box.get_children():
            self._detail_box.remove(child)

        network = self._row_for(ssid)
        if network is None:
            self._detail_stack.set_visible_child_name("empty")
            return

        name_label = Gtk.Label()
        name_label.set_markup(f'<b><big>{GLib.markup_escape_text(ssid)}</big></b>')
        name_label.set_halign(Gtk.Align.START)
        self._detail_box.pack_start(name_label, False, False, 0)
        self._detail_box.pack_start(Gtk.Separator(), False, False, 4)

        self._add_grid_rows([
            ("Signal", f"{network.strength}%"),
            ("Security", "Secured" if network.is_secure else "Open"),
            ("State", _STATE_LABELS.get(network.state, "Not connected")),
        ])

        btn_box = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL, spacing=8)
        if network.action == NetworkAction.DISCONNECT:
            btn = Gtk.Button(label="Disconnect")
            btn.get_style_context().add_class("destructive-action")
            btn.connect("clicked", lambda _b: self._submit(Disconnect(ssid)))
            btn_box.pack_start(btn, True, True, 0)
        elif network.action == NetworkAction.CONNECT:
            btn = Gtk.Button(label="Connect")
            btn.get_style_context().add_class("suggested-action")
            btn.connect("clicked", lambda _b: self._submit(Connect(ssid)))
            btn_box.pack_start(btn, True, True, 0)
        if network.is_saved:
            forget_btn = Gtk.Button(label="Forget")
            forget_btn.connect("clicked", self._on_forget_clicked, ssid)
            btn_box.pack_start(forget_btn, False, False, 0)
        self._detail_box.pack_start(btn_box, False, False, 0)

        if network.is_saved:
            self._build_profile_section(ssid)

        self._detail_stack.set_visible_child_name("details")
        self._detail_box.show_all()

    def _build_profile_section(self, ssid):
        details = self._overlay.details
        if details is None or details.ssid != ssid:
            loading = Gtk.Label(label="Loading settings…")
            loading.set_halign(Gtk.Align.START)
            self._detail_box.pack_start(loading, False, False, 4)
            return

        self._detail_box.pack_start(Gtk.Separator(), False, False, 4)
        self._add_grid_rows([
            ("IP address", f"{details.ip_address}/{details.prefix}"
             if details.ip_address else "Automatic (DHCP)"),
            ("Gateway", details.gateway or "-"),
            ("DNS", ", ".join(details.dns_servers) or "Automatic"),
        ])

        pwd_box = Gtk.Box(spacing=8)
        pwd_label = Gtk.Label(label=self._overlay.revealed_password or "•" * 8)
        pwd_label.set_selectable(True)
        pwd_box.pack_start(pwd_label, True, True, 0)
        show_btn = Gtk.Button(label="Show password")
        show_btn.connect("clicked", lambda _b: self._submit(RevealPassword(ssid)))
        pwd_box.pack_end(show_btn, False, False, 0)
        self._detail_box.pack_start(pwd_box, False, False, 0)

        expander = Gtk.Expander(label="Advanced")
        adv_grid = Gtk.Grid()
        adv_grid.set_column_spacing(8)
        adv_grid.set_row_spacing(6)
        adv_grid.set_margin_top(8)

        auto_switch = Gtk.Switch()
        auto_switch.set_active(bool(details.auto_reconnect))
        auto_switch.set_halign(Gtk.Align.START)
        adv_grid.attach(Gtk.Label(label="Auto-reconnect"), 0, 0, 1, 1)
        adv_grid.attach(auto_switch, 1, 0, 1, 1)

        dhcp_radio = Gtk.RadioButton.new_with_label(None, "Automatic (DHCP)")
        static_radio = Gtk.RadioButton.new_with_label_from_widget(dhcp_radio, "Static IP")
        static_radio.set_active(not details.uses_dhcp)
        adv_grid.attach(dhcp_radio, 0, 1, 2, 1)
        adv_grid.attach(static_radio, 0, 2, 2, 1)

        ip_entry = Gtk.Entry()
        ip_entry.set_placeholder_text("192.168.1.100/24")
        if details.ip_address:
            ip_entry.set_text(f"{details.ip_address}/{details.prefix}")
        gw_entry = Gtk.Entry()
        gw_entry.set_placeholder_text("192.168.1.1")
        gw_entry.set_text(details.gateway or "")
        dns_entry = Gtk.Entry()
        dns_entry.set_placeholder_text("1.1.1.1 8.8.8.8")
        dns_entry.set_text(" ".join(details.dns_servers))
        for index, (label, entry) in enumerate(
                (("IP address", ip_entry), ("Gateway", gw_entry), ("DNS", dns_entry)), start=3):
            key = Gtk.Label(label=label)
            key.set_halign(Gtk.Align.START)
            adv_grid.attach(key, 0, index, 1, 1)
            adv_grid.attach(entry, 1, index, 1, 1)

        def on_radio_toggled(_radio):
            is_static = static_radio.get_active()
            ip_entry.set_sensitive(is_static)
            gw_entry.set_sensitive(is_static)

        static_radio.connect("toggled", on_radio_toggled)
        on_radio_toggled(static_radio)

        error_label = Gtk.Label()
        error_label.get_style_context().add_class("status-error")
        adv_grid.attach(error_label, 0, 6, 2, 1)

        def on_apply(_button):
            ip = prefix = gateway = None
            if static_radio.get_active():
                try:
                    ip, prefix = parse_address(ip_entry.get_text())
                except ValueError as e:
                    error_label.set_text(f"Invalid address: {e}")
                    return
                gateway = gw_entry.get_text().strip() or None
            dns = tuple(dns_entry.get_text().replace(",", " ").split())
            self._submit(SaveSettings(ssid, ip or None, prefix, gateway, dns,
                                      auto_switch.get_active()))

        apply_btn = Gtk.Button(label="Apply")
        apply_btn.get_style_context().add_class("suggested-action")
        apply_btn.connect("clicked", on_apply)
        adv_grid.attach(apply_btn, 1, 7, 1, 1)

        expander.add(adv_grid)
        self._detail_box.pack_start(expander, False, False, 0)

    # -- Event Handlers ------------------------------------------------------

    def _on_wifi_switch(self, switch, _gparam):
        if self._updating_switch:
            return
        self._submit(ToggleWifi(switch.get_active()))

    def _on_network_selected(self, _listbox, row):
        ssid = getattr(row, "ssid", None) if row is not None else None
        if ssid is None:
            return
        if ssid != self._selected_ssid:
            self._selected_ssid = ssid
            network = self._row_for(ssid)
            if network is not None and network.is_saved:
                self._submit(LoadDetails(ssid))
            self._show_network_details(ssid)

    def _on_forget_clicked(self, _button, ssid):
        dialog = Gtk.MessageDialog(
            transient_for=self,
            modal=True,
            message_type=Gtk.MessageType.QUESTION,
            buttons=Gtk.ButtonsType.YES_NO,
            text=f'Forget "{ssid}"?',
        )
        response = dialog.run()
        dialog.destroy()
        if response == Gtk.ResponseType.YES:
            self._submit(Forget(ssid))

    def _new_dialog(self, title, accept_label):
        dialog = Gtk.Dialog(title=title, transient_for=self, modal=True,
                            destroy_with_parent=True)
        dialog.add_button("Cancel", Gtk.ResponseType.CANCEL)
        dialog.add_button(accept_label, Gtk.ResponseType.OK)
        dialog.set_default_response(Gtk.ResponseType.OK)
        content = dialog.get_content_area()
        content.set_spacing(12)
        content.set_margin_start(20)
        content.set_margin_end(20)
        content.set_margin_top(12)
        content.set_margin_bottom(12)
        return dialog, content

    @staticmethod
    def _password_entry(content):
        entry = Gtk.Entry()
        entry.set_visibility(False)
        entry.set_invisible_char('•')
        entry.set_placeholder_text("Password")
        entry.set_activates_default(True)
        content.pack_start(entry, False, False, 0)
        show_pwd = Gtk.CheckButton(label="Show password")
        show_pwd.connect("toggled", lambda cb: entry.set_visibility(cb.get_active()))
        content.pack_start(show_pwd, False, False, 0)
        return entry

    def _show_password_dialog(self, prompt):
        """Ask for the password requested by *prompt* and retry the connect."""
        if self._overlay.prompt != prompt:
            return False
        dialog, content = self._new_dialog("Password required", "Connect")

        label = Gtk.Label()
        label.set_markup(
            f'Enter the password for <b>{GLib.markup_escape_text(prompt.ssid)}</b>')
        label.set_halign(Gtk.Align.START)
        content.pack_start(label, False, False, 0)

        if prompt.error:
            error_label = Gtk.Label(label=prompt.error)
            error_label.set_halign(Gtk.Align.START)
            error_label.get_style_context().add_class("prompt-error")
            content.pack_start(error_label, False, False, 0)

        entry = self._password_entry(content)
        dialog.show_all()
        response = dialog.run()
        password = entry.get_text()
        dialog.destroy()

        if response == Gtk.ResponseType.OK and password:
            if prompt.hidden:
                self._submit(ConnectHidden(prompt.ssid, prompt.security or "wpa-psk", password))
            else:
                self._submit(Connect(prompt.ssid, password, from_password=True))
        else:
            self._submit(CancelPrompt())
        return False

    def _on_hidden_network(self, _button):
        dialog, content = self._new_dialog("Hidden network", "Connect")

        ssid_entry = Gtk.Entry()
        ssid_entry.set_placeholder_text("SSID")
        content.pack_start(ssid_entry, False, False, 0)

        security_combo = Gtk.ComboBoxText()
        for security in HIDDEN_SECURITY_TYPES:
            security_combo.append(security, security)
        security_combo.set_active_id("wpa-psk")
        content.pack_start(security_combo, False, False, 0)

        pwd_entry = self._password_entry(content)
        dialog.show_all()
        response = dialog.run()
        ssid = ssid_entry.get_text().strip()
        security = security_combo.get_active_id() or "wpa-psk"
        password = pwd_entry.get_text()
        dialog.destroy()

        if response == Gtk.ResponseType.OK and ssid:
            self._submit(ConnectHidden(ssid, security, password or None))

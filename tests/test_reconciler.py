#!/usr/bin/env python3
"""
Tests for the YuFi reconciler.

Most tests replace the dispatcher, watcher and debounce timer with
recorders so every transition can be driven by hand.  The last class
runs the real workers against the mock backend.
"""

import os
import sys
import time
import unittest

REPO_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, REPO_DIR)

from yufi.backend.mock_backend import MockBackend
from yufi.config import Settings
from yufi.core import dispatcher as ops
from yufi.core import intents
from yufi.core.events import (
    ActiveStateChanged,
    ConnectDone,
    DetailsLoaded,
    ForgetDone,
    PasswordRevealed,
    RefreshRequested,
    ScanDone,
    SettingsSaved,
    StateLoaded,
    WifiToggled,
)
from yufi.core.overlay import STATE_CONNECTING, STATE_FAILED, display_rows
from yufi.core.reconciler import INCORRECT_PASSWORD, Reconciler
from yufi.errors import BackendError, FailureKind
from yufi.models import (
    AccessPointSighting,
    ActiveState,
    ConnectOutcome,
    NetworkDetails,
    build_app_state,
)

NEEDS_SECRETS = BackendError("Secrets were required, but not provided",
                             FailureKind.NEEDS_SECRETS)


class _RecordingDispatcher:
    def __init__(self):
        self.submitted = []

    def submit(self, operation):
        self.submitted.append(operation)

    def of_type(self, kind):
        return [op for op in self.submitted if isinstance(op, kind)]


class _RecordingWatcher:
    def __init__(self):
        self.watched = []

    def watch(self, ssid, active_path):
        self.watched.append((ssid, active_path))


class _SlowCleanupBackend(MockBackend):
    """Mock whose profile deletions take a while to complete."""

    def delete_profile(self, profile_path):
        time.sleep(0.3)
        super().delete_profile(profile_path)

    def forget_network(self, ssid):
        time.sleep(0.3)
        super().forget_network(ssid)


def _snapshot(active="Home_Fiber_5G", enabled=True):
    sightings = [
        AccessPointSighting("Home_Fiber_5G", 90, is_secure=True),
        AccessPointSighting("Guest_Network", 48, is_secure=True),
        AccessPointSighting("Coffee_Shop_Free", 55),
    ]
    sightings = [
        AccessPointSighting(s.ssid, s.strength, s.ssid == active, s.is_secure)
        for s in sightings
    ]
    return build_app_state(enabled, sightings, ["Home_Fiber_5G"])


class ReconcilerTestCase(unittest.TestCase):

    def setUp(self):
        self.dispatcher = _RecordingDispatcher()
        self.watcher = _RecordingWatcher()
        self.scheduled = []
        self.reconciler = Reconciler(
            MockBackend(step_delay=0), Settings(),
            dispatcher=self.dispatcher, watcher=self.watcher,
            schedule=lambda delay, callback: self.scheduled.append((delay, callback)))
        self.feed(StateLoaded(_snapshot()))

    def feed(self, *items):
        """Queue intents or events and apply them in one drain."""
        for item in items:
            if isinstance(item, intents.Intent.__args__):
                self.reconciler.submit_intent(item)
            else:
                self.reconciler._events.put(item)
        return self.reconciler.drain()

    @property
    def overlay(self):
        return self.reconciler.overlay

    def reloads(self):
        return len(self.dispatcher.of_type(ops.ReloadState))


# ═══════════════════════════════════════════════════════════════════════════
# Connect flow
# ═══════════════════════════════════════════════════════════════════════════

class TestConnectFlow(ReconcilerTestCase):

    def test_connect_is_optimistic(self):
        self.feed(intents.Connect("Guest_Network"))
        self.assertEqual(self.overlay.optimistic_active_ssid, "Guest_Network")
        self.assertEqual(self.overlay.status, "Connecting to Guest_Network...")
        self.assertEqual(self.dispatcher.of_type(ops.Connect),
                         [ops.Connect("Guest_Network", None, False)])
        rows = {r.ssid: r for r in display_rows(self.reconciler.snapshot, self.overlay)}
        self.assertEqual(rows["Guest_Network"].state, STATE_CONNECTING)
        self.assertIsNone(rows["Home_Fiber_5G"].state)

    def test_password_prompt_then_success(self):
        self.feed(intents.Connect("Guest_Network"))
        self.feed(ConnectDone("Guest_Network", was_saved=False, error=NEEDS_SECRETS))

        prompt = self.overlay.prompt
        self.assertEqual(prompt.ssid, "Guest_Network")
        self.assertIsNone(prompt.error)
        self.assertIsNone(self.overlay.optimistic_active_ssid)
        self.assertNotIn("Guest_Network", self.overlay.failed_connects)
        self.assertEqual(self.dispatcher.of_type(ops.ForgetProfile),
                         [ops.ForgetProfile("Guest_Network", cleanup=True)])

        self.feed(intents.Connect("Guest_Network", "hunter2", from_password=True))
        self.assertIsNone(self.overlay.prompt)
        self.feed(ConnectDone("Guest_Network", from_password=True, password_supplied=True,
                              outcome=ConnectOutcome("/ac/2", False)))
        self.assertEqual(self.watcher.watched, [("Guest_Network", "/ac/2")])
        self.assertEqual(self.overlay.pending.active_path, "/ac/2")

        before = self.reloads()
        self.feed(ActiveStateChanged("Guest_Network", ActiveState.ACTIVATING, "/ac/2"))
        self.feed(ActiveStateChanged("Guest_Network", ActiveState.ACTIVATED, "/ac/2"))
        self.assertIsNone(self.overlay.pending)
        self.assertIsNone(self.overlay.optimistic_active_ssid)
        self.assertIsNone(self.overlay.prompt)
        self.assertEqual(self.overlay.status, "Connected to Guest_Network")
        self.assertEqual(self.reloads(), before + 1)

    def test_wrong_password_marks_failed(self):
        self.feed(intents.Connect("Guest_Network", "wrong", from_password=True))
        self.feed(ConnectDone("Guest_Network", from_password=True, password_supplied=True,
                              outcome=ConnectOutcome("/ac/3", False)))
        self.feed(ActiveStateChanged("Guest_Network", ActiveState.DEACTIVATED, "/ac/3"))

        self.assertIn("Guest_Network", self.overlay.failed_connects)
        self.assertEqual(self.overlay.prompt.error, INCORRECT_PASSWORD)
        self.assertIsNone(self.overlay.pending)
        self.assertEqual(self.dispatcher.of_type(ops.ForgetProfile),
                         [ops.ForgetProfile("Guest_Network", cleanup=True)])
        rows = {r.ssid: r for r in display_rows(self.reconciler.snapshot, self.overlay)}
        self.assertEqual(rows["Guest_Network"].state, STATE_FAILED)

    def test_saved_profile_is_never_cleaned_up(self):
        self.feed(intents.Connect("Home_Fiber_5G"))
        self.feed(ConnectDone("Home_Fiber_5G", was_saved=True,
                              outcome=ConnectOutcome("/ac/4", True)))
        self.feed(ActiveStateChanged("Home_Fiber_5G", ActiveState.DEACTIVATED, "/ac/4",
                                     "no carrier"))
        self.assertEqual(self.dispatcher.of_type(ops.ForgetProfile), [])
        self.assertEqual(self.overlay.status, "Could not connect to Home_Fiber_5G: no carrier")

    def test_open_network_failure_does_not_prompt(self):
        self.feed(intents.Connect("Coffee_Shop_Free"))
        self.feed(ConnectDone("Coffee_Shop_Free", outcome=ConnectOutcome("/ac/5", False)))
        self.feed(ActiveStateChanged("Coffee_Shop_Free", ActiveState.DEACTIVATED, "/ac/5"))
        self.assertIsNone(self.overlay.prompt)
        self.assertNotIn("Coffee_Shop_Free", self.overlay.failed_connects)

    def test_connect_error_sets_status(self):
        self.feed(intents.Connect("Coffee_Shop_Free"))
        self.feed(ConnectDone("Coffee_Shop_Free", was_saved=True,
                              error=BackendError("No network with SSID found")))
        self.assertIsNone(self.overlay.prompt)
        self.assertEqual(self.overlay.status,
                         "Could not connect to Coffee_Shop_Free: No network with SSID found")
        self.assertEqual(self.dispatcher.of_type(ops.ForgetProfile), [])

    def test_stale_connect_result_is_ignored(self):
        self.feed(intents.Connect("Guest_Network"))
        self.feed(intents.Connect("Coffee_Shop_Free"))
        self.feed(ConnectDone("Guest_Network", was_saved=False, error=NEEDS_SECRETS))
        self.assertIsNone(self.overlay.prompt)
        self.assertEqual(self.overlay.optimistic_active_ssid, "Coffee_Shop_Free")
        self.assertEqual(self.dispatcher.of_type(ops.ForgetProfile), [])

    def test_state_for_other_attempt_is_ignored(self):
        self.feed(intents.Connect("Guest_Network", "hunter2"))
        self.feed(ConnectDone("Guest_Network", password_supplied=True,
                              outcome=ConnectOutcome("/ac/6", False)))
        self.feed(ActiveStateChanged("Guest_Network", ActiveState.DEACTIVATED, "/ac/1"))
        self.assertIsNotNone(self.overlay.pending)

    def test_hidden_connect_prompt_keeps_security(self):
        self.feed(intents.ConnectHidden("Lab_Hidden", "wpa-psk"))
        self.feed(ConnectDone("Lab_Hidden", hidden=True, security="wpa-psk",
                              error=NEEDS_SECRETS))
        self.assertTrue(self.overlay.prompt.hidden)
        self.assertEqual(self.overlay.prompt.security, "wpa-psk")

    def test_cancel_prompt(self):
        self.feed(intents.Connect("Guest_Network"))
        self.feed(ConnectDone("Guest_Network", error=NEEDS_SECRETS))
        self.feed(intents.CancelPrompt())
        self.assertIsNone(self.overlay.prompt)
        self.assertEqual(self.overlay.status, "Connection to Guest_Network cancelled")


# ═══════════════════════════════════════════════════════════════════════════
# Failed-attempt cleanup
# ═══════════════════════════════════════════════════════════════════════════

class TestCleanupOrdering(ReconcilerTestCase):

    def fail_attempt(self):
        self.feed(intents.Connect("Guest_Network", "wrong", from_password=True))
        self.feed(ConnectDone("Guest_Network", from_password=True, password_supplied=True,
                              outcome=ConnectOutcome("/ac/3", False, "/settings/9")))
        self.feed(ActiveStateChanged("Guest_Network", ActiveState.DEACTIVATED, "/ac/3"))

    def test_cleanup_targets_attempt_profile(self):
        self.fail_attempt()
        self.assertEqual(
            self.dispatcher.of_type(ops.ForgetProfile),
            [ops.ForgetProfile("Guest_Network", cleanup=True, profile_path="/settings/9")])

    def test_retry_waits_for_cleanup(self):
        self.fail_attempt()
        self.feed(intents.Connect("Guest_Network", "hunter2", from_password=True))
        self.assertEqual(len(self.dispatcher.of_type(ops.Connect)), 1)
        self.assertEqual(self.overlay.optimistic_active_ssid, "Guest_Network")
        self.assertEqual(self.overlay.status, "Connecting to Guest_Network...")

        self.feed(ForgetDone("Guest_Network", cleanup=True))
        self.assertEqual(self.dispatcher.of_type(ops.Connect)[-1],
                         ops.Connect("Guest_Network", "hunter2", True))
        self.assertEqual(len(self.dispatcher.of_type(ops.Connect)), 2)

    def test_retry_released_after_cleanup_error(self):
        self.fail_attempt()
        self.feed(intents.ConnectHidden("Guest_Network", "wpa-psk", "hunter2"))
        self.assertEqual(self.dispatcher.of_type(ops.ConnectHidden), [])
        with self.assertLogs("yufi.core.reconciler", level="WARNING"):
            self.feed(ForgetDone("Guest_Network", cleanup=True,
                                 error=BackendError("gone", FailureKind.NOT_FOUND)))
        self.assertEqual(self.dispatcher.of_type(ops.ConnectHidden),
                         [ops.ConnectHidden("Guest_Network", "wpa-psk", "hunter2")])

    def test_held_retry_dropped_when_user_moves_on(self):
        self.fail_attempt()
        self.feed(intents.Connect("Guest_Network", "hunter2", from_password=True))
        self.feed(intents.Connect("Coffee_Shop_Free"))
        self.feed(ForgetDone("Guest_Network", cleanup=True))
        self.assertEqual([op.ssid for op in self.dispatcher.of_type(ops.Connect)],
                         ["Guest_Network", "Coffee_Shop_Free"])

    def test_late_cleanup_result_keeps_new_attempt(self):
        self.fail_attempt()
        self.feed(intents.Connect("Guest_Network", "hunter2", from_password=True))
        self.feed(ConnectDone("Guest_Network", from_password=True, password_supplied=True,
                              outcome=ConnectOutcome("/ac/4", False, "/settings/10")))
        self.feed(ForgetDone("Guest_Network", cleanup=True))
        self.assertEqual(self.overlay.pending.active_path, "/ac/4")
        self.assertEqual(self.overlay.pending.profile_path, "/settings/10")
        self.assertEqual(self.overlay.optimistic_active_ssid, "Guest_Network")
        self.assertEqual(len(self.dispatcher.of_type(ops.Connect)), 1)

        self.feed(ActiveStateChanged("Guest_Network", ActiveState.ACTIVATED, "/ac/4"))
        self.feed(ForgetDone("Guest_Network", cleanup=True))
        self.assertEqual(self.overlay.status, "Connected to Guest_Network")
        self.assertEqual(len(self.dispatcher.of_type(ops.ForgetProfile)), 1)


# ═══════════════════════════════════════════════════════════════════════════
# Snapshots, radio and refresh
# ═══════════════════════════════════════════════════════════════════════════

class TestSnapshots(ReconcilerTestCase):

    def test_snapshot_confirms_pending(self):
        self.feed(intents.Connect("Guest_Network", "hunter2"))
        self.feed(ConnectDone("Guest_Network", password_supplied=True,
                              outcome=ConnectOutcome("/ac/2", False)))
        self.feed(StateLoaded(_snapshot(active="Guest_Network")))
        self.assertIsNone(self.overlay.pending)
        self.assertIsNone(self.overlay.optimistic_active_ssid)
        self.assertEqual(self.reconciler.snapshot.active_ssid, "Guest_Network")

    def test_optimistic_survives_unrelated_snapshot(self):
        self.feed(intents.Connect("Guest_Network"))
        self.feed(StateLoaded(_snapshot()))
        self.assertEqual(self.overlay.optimistic_active_ssid, "Guest_Network")

    def test_radio_off_clears_attempt(self):
        self.feed(intents.Connect("Guest_Network", "hunter2"))
        self.feed(ConnectDone("Guest_Network", password_supplied=True,
                              outcome=ConnectOutcome("/ac/2", False)))
        self.feed(StateLoaded(build_app_state(False, [])))
        self.assertIsNone(self.overlay.pending)
        self.assertIsNone(self.overlay.optimistic_active_ssid)

    def test_toggle_off_clears_prompt(self):
        self.feed(intents.Connect("Guest_Network"))
        self.feed(ConnectDone("Guest_Network", error=NEEDS_SECRETS))
        self.feed(intents.ToggleWifi(False))
        self.assertIsNone(self.overlay.prompt)
        self.assertEqual(self.dispatcher.of_type(ops.SetRadioEnabled),
                         [ops.SetRadioEnabled(False)])
        before = self.reloads()
        self.feed(WifiToggled(False))
        self.assertEqual(self.overlay.status, "Wi-Fi disabled")
        self.assertEqual(self.reloads(), before + 1)

    def test_load_error_keeps_snapshot(self):
        snapshot = self.reconciler.snapshot
        self.feed(StateLoaded(error=BackendError("service unavailable")))
        self.assertIs(self.reconciler.snapshot, snapshot)
        self.assertIn("service unavailable", self.overlay.status)

    def test_refresh_burst_is_debounced(self):
        before = self.reloads()
        self.feed(*[RefreshRequested("AccessPoints") for _ in range(5)])
        self.assertEqual(len(self.scheduled), 1)
        self.assertEqual(self.scheduled[0][0], Settings().debounce_seconds)

        _, elapse = self.scheduled.pop()
        elapse()
        self.feed()
        self.assertEqual(self.reloads(), before + 1)

        self.feed(RefreshRequested("LastScan"))
        self.assertEqual(len(self.scheduled), 1)

    def test_scan_cycle(self):
        self.feed(intents.RequestScan())
        self.assertTrue(self.overlay.scanning)
        self.feed(ScanDone())
        self.assertFalse(self.overlay.scanning)
        self.assertEqual(len(self.scheduled), 1)

    def test_scan_failure(self):
        self.feed(intents.RequestScan(), ScanDone(BackendError("Wi-Fi is disabled")))
        self.assertEqual(self.overlay.status, "Scan failed: Wi-Fi is disabled")
        self.assertEqual(self.scheduled, [])


# ═══════════════════════════════════════════════════════════════════════════
# Forget and profile settings
# ═══════════════════════════════════════════════════════════════════════════

class TestProfiles(ReconcilerTestCase):

    def test_forget(self):
        self.feed(intents.Forget("Home_Fiber_5G"))
        self.assertEqual(self.dispatcher.of_type(ops.ForgetProfile),
                         [ops.ForgetProfile("Home_Fiber_5G")])
        self.feed(ForgetDone("Home_Fiber_5G"))
        self.assertEqual(self.overlay.status, "Forgot Home_Fiber_5G")

    def test_cleanup_failure_is_only_logged(self):
        self.feed(intents.Connect("Coffee_Shop_Free"))
        status = self.overlay.status
        before = self.reloads()
        with self.assertLogs("yufi.core.reconciler", level="WARNING"):
            self.feed(ForgetDone("Guest_Network", cleanup=True,
                                 error=BackendError("gone", FailureKind.NOT_FOUND)))
        self.assertEqual(self.overlay.status, status)
        self.assertEqual(self.reloads(), before)

    def test_details_and_settings(self):
        details = NetworkDetails("Home_Fiber_5G", auto_reconnect=True)
        self.feed(intents.LoadDetails("Home_Fiber_5G"), DetailsLoaded("Home_Fiber_5G", details))
        self.assertEqual(self.overlay.details, details)

        self.feed(intents.SaveSettings("Home_Fiber_5G", "192.168.1.50", 24, "192.168.1.1",
                                       ("1.1.1.1",), False))
        self.assertEqual(self.dispatcher.of_type(ops.SaveSettings)[0].ip, "192.168.1.50")
        self.feed(SettingsSaved("Home_Fiber_5G"))
        self.assertEqual(self.overlay.status, "Settings saved for Home_Fiber_5G")
        self.assertEqual(len(self.dispatcher.of_type(ops.LoadDetails)), 2)

    def test_reveal_password(self):
        self.feed(intents.RevealPassword("Home_Fiber_5G"),
                  PasswordRevealed("Home_Fiber_5G", "fiber-home-5g"))
        self.assertEqual(self.overlay.revealed_password, "fiber-home-5g")
        self.feed(intents.RevealPassword("Coffee_Shop_Free"),
                  PasswordRevealed("Coffee_Shop_Free", None))
        self.assertIsNone(self.overlay.revealed_password)
        self.assertEqual(self.overlay.status, "No password saved for Coffee_Shop_Free")


# ═══════════════════════════════════════════════════════════════════════════
# Publishing
# ═══════════════════════════════════════════════════════════════════════════

class TestPublishing(ReconcilerTestCase):

    def test_one_publish_per_drain(self):
        views = []
        self.reconciler.subscribe(lambda snapshot, overlay: views.append(overlay))
        self.assertEqual(self.feed(intents.Connect("Guest_Network"),
                                   intents.RequestScan(),
                                   RefreshRequested("LastScan")), 3)
        self.assertEqual(len(views), 1)
        self.assertTrue(views[0].scanning)
        self.assertEqual(self.feed(), 0)
        self.assertEqual(len(views), 1)

    def test_unsubscribe(self):
        views = []
        unsubscribe = self.reconciler.subscribe(lambda s, o: views.append(o))
        unsubscribe()
        unsubscribe()
        self.feed(intents.Reload())
        self.assertEqual(views, [])

    def test_failing_subscriber_does_not_block_others(self):
        views = []

        def broken(snapshot, overlay):
            raise RuntimeError("widget destroyed")

        self.reconciler.subscribe(broken)
        self.reconciler.subscribe(lambda s, o: views.append(o))
        with self.assertLogs("yufi.core.reconciler", level="ERROR"):
            self.feed(intents.Reload())
        self.assertEqual(len(views), 1)

    def test_unknown_intent(self):
        with self.assertRaises(TypeError):
            self.reconciler.submit_intent(ops.ReloadState())


# ═══════════════════════════════════════════════════════════════════════════
# End to end against the mock backend
# ═══════════════════════════════════════════════════════════════════════════

class TestMockIntegration(unittest.TestCase):

    def setUp(self):
        self.backend = MockBackend(step_delay=0)
        self.reconciler = Reconciler(self.backend, Settings(poll_interval_ms=5, debounce_ms=10))
        self.reconciler.start(listen=False)
        self.assertTrue(self.reconciler.run_until(
            lambda snapshot, _: bool(snapshot.networks), timeout=5))

    def test_guest_network_with_password(self):
        self.assertEqual(self.reconciler.snapshot.active_ssid, "Home_Fiber_5G")

        self.reconciler.submit_intent(intents.Connect("Guest_Network"))
        self.assertTrue(self.reconciler.run_until(
            lambda _, overlay: overlay.prompt is not None, timeout=5))
        self.assertEqual(self.reconciler.overlay.prompt.ssid, "Guest_Network")

        self.reconciler.submit_intent(
            intents.Connect("Guest_Network", "hunter2", from_password=True))
        self.assertTrue(self.reconciler.run_until(
            lambda snapshot, overlay: snapshot.active_ssid == "Guest_Network"
            and overlay.pending is None, timeout=5))
        self.assertEqual(self.reconciler.overlay.failed_connects, frozenset())

    def test_scan_refreshes_snapshot(self):
        self.reconciler.submit_intent(intents.RequestScan())
        self.assertTrue(self.reconciler.run_until(
            lambda _, overlay: not overlay.scanning, timeout=5))
        self.assertEqual(self.backend.scan_count, 1)

    def test_retry_survives_slow_cleanup(self):
        backend = _SlowCleanupBackend(step_delay=0)
        reconciler = Reconciler(backend, Settings(poll_interval_ms=5, debounce_ms=10))
        reconciler.start(listen=False)

        reconciler.submit_intent(intents.Connect("Guest_Network", "wrong", from_password=True))
        self.assertTrue(reconciler.run_until(
            lambda _, overlay: overlay.prompt is not None, timeout=5))
        self.assertEqual(reconciler.overlay.prompt.error, INCORRECT_PASSWORD)

        reconciler.submit_intent(intents.Connect("Guest_Network", "hunter2", from_password=True))
        self.assertTrue(reconciler.run_until(
            lambda snapshot, overlay: snapshot.active_ssid == "Guest_Network"
            and overlay.pending is None, timeout=5))
        self.assertEqual(backend.active_ssid, "Guest_Network")
        self.assertIn("Guest_Network", backend.list_saved_ssids())


if __name__ == "__main__":
    unittest.main()

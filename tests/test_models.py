#!/usr/bin/env python3
"""
Tests for the YuFi data model.

Validates the access-point merge, snapshot ordering, strength classes and
action derivation.  No bus or GTK is required.
"""

import os
import sys
import unittest

REPO_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, REPO_DIR)

from yufi.models import (
    AccessPointSighting,
    ActiveState,
    AppState,
    Network,
    NetworkAction,
    NetworkDetails,
    build_app_state,
    merge_sightings,
    signal_icon,
    strength_class,
)


# ═══════════════════════════════════════════════════════════════════════════
# Strength classes
# ═══════════════════════════════════════════════════════════════════════════
class TestStrengthClass(unittest.TestCase):
    """Verify the inclusive upper bounds of the five strength classes."""

    def test_boundaries(self):
        cases = {0: 0, 20: 0, 21: 1, 40: 1, 41: 2, 60: 2, 61: 3, 80: 3, 81: 4, 100: 4}
        for strength, expected in cases.items():
            with self.subTest(strength=strength):
                self.assertEqual(strength_class(strength), expected)

    def test_monotonic(self):
        classes = [strength_class(s) for s in range(0, 101)]
        self.assertEqual(classes, sorted(classes))
        self.assertEqual(set(classes), {0, 1, 2, 3, 4})

    def test_icons_distinct(self):
        icons = {signal_icon(s) for s in (10, 30, 50, 70, 90)}
        self.assertEqual(len(icons), 5)
        self.assertEqual(signal_icon(90), 'network-wireless-signal-excellent')
        self.assertEqual(signal_icon(0), 'network-wireless-signal-none')


class TestActiveState(unittest.TestCase):
    """Verify active-connection state helpers."""

    def test_terminal_states(self):
        self.assertTrue(ActiveState.ACTIVATED.is_terminal)
        self.assertTrue(ActiveState.DEACTIVATED.is_terminal)
        self.assertFalse(ActiveState.ACTIVATING.is_terminal)
        self.assertFalse(ActiveState.DEACTIVATING.is_terminal)
        self.assertFalse(ActiveState.UNKNOWN.is_terminal)

    def test_from_code(self):
        self.assertIs(ActiveState.from_code(2), ActiveState.ACTIVATED)
        self.assertIs(ActiveState.from_code(99), ActiveState.UNKNOWN)
        self.assertIs(ActiveState.from_code(None), ActiveState.UNKNOWN)


# ═══════════════════════════════════════════════════════════════════════════
# Merge
# ═══════════════════════════════════════════════════════════════════════════
class TestMergeSightings(unittest.TestCase):
    """Verify that sightings sharing an SSID collapse into one entry."""

    def test_strongest_inactive_wins(self):
        merged = merge_sightings([
            AccessPointSighting("Office_Main", 40, is_secure=True),
            AccessPointSighting("Office_Main", 70, is_secure=True),
        ])
        self.assertEqual(len(merged), 1)
        self.assertEqual(merged["Office_Main"].strength, 70)

    def test_active_beats_stronger(self):
        merged = merge_sightings([
            AccessPointSighting("Home_Fiber_5G", 90),
            AccessPointSighting("Home_Fiber_5G", 30, is_active=True),
        ])
        self.assertEqual(merged["Home_Fiber_5G"].strength, 30)
        self.assertTrue(merged["Home_Fiber_5G"].is_active)

    def test_active_wins_in_any_order(self):
        sightings = [
            AccessPointSighting("Net", 10, is_active=True),
            AccessPointSighting("Net", 95),
            AccessPointSighting("Net", 60),
        ]
        for ordering in (sightings, list(reversed(sightings))):
            with self.subTest(first=ordering[0].strength):
                merged = merge_sightings(ordering)
                self.assertEqual(merged["Net"].strength, 10)

    def test_secure_if_any_sighting_secure(self):
        merged = merge_sightings([
            AccessPointSighting("Mixed", 80),
            AccessPointSighting("Mixed", 20, is_secure=True),
        ])
        self.assertTrue(merged["Mixed"].is_secure)
        self.assertEqual(merged["Mixed"].strength, 80)

    def test_empty_ssid_skipped(self):
        merged = merge_sightings([AccessPointSighting("", 99)])
        self.assertEqual(merged, {})


# ═══════════════════════════════════════════════════════════════════════════
# Snapshot
# ═══════════════════════════════════════════════════════════════════════════
class TestBuildAppState(unittest.TestCase):
    """Verify snapshot construction, ordering and actions."""

    def setUp(self):
        self.sightings = [
            AccessPointSighting("Bravo", 50),
            AccessPointSighting("Alpha", 50),
            AccessPointSighting("Charlie", 90),
            AccessPointSighting("Delta", 20, is_active=True, is_secure=True),
        ]

    def test_ordering(self):
        state = build_app_state(True, self.sightings)
        self.assertEqual([n.ssid for n in state.networks],
                         ["Delta", "Charlie", "Alpha", "Bravo"])

    def test_ordering_stable(self):
        first = build_app_state(True, self.sightings)
        second = build_app_state(True, list(reversed(self.sightings)))
        self.assertEqual(first, second)

    def test_one_network_per_ssid(self):
        state = build_app_state(True, self.sightings + [AccessPointSighting("Alpha", 10)])
        ssids = [n.ssid for n in state.networks]
        self.assertEqual(len(ssids), len(set(ssids)))

    def test_actions(self):
        state = build_app_state(True, self.sightings)
        self.assertEqual(state.find("Delta").action, NetworkAction.DISCONNECT)
        self.assertEqual(state.find("Alpha").action, NetworkAction.CONNECT)

    def test_radio_off_has_no_actions(self):
        state = build_app_state(False, self.sightings)
        self.assertTrue(all(n.action is NetworkAction.NONE for n in state.networks))

    def test_saved_flag(self):
        state = build_app_state(True, self.sightings, saved_ssids={"Alpha"})
        self.assertTrue(state.find("Alpha").is_saved)
        self.assertFalse(state.find("Bravo").is_saved)

    def test_strength_clamped(self):
        state = build_app_state(True, [AccessPointSighting("Loud", 140)])
        self.assertEqual(state.find("Loud").strength, 100)

    def test_active_ssid(self):
        state = build_app_state(True, self.sightings)
        self.assertEqual(state.active_ssid, "Delta")
        self.assertIsNone(AppState().active_ssid)
        self.assertIsNone(state.find("Missing"))

    def test_snapshot_immutable(self):
        state = build_app_state(True, self.sightings)
        with self.assertRaises(Exception):
            state.wifi_enabled = False
        self.assertIsInstance(state.networks, tuple)


class TestNetwork(unittest.TestCase):
    """Verify Network display helpers."""

    def test_strength_class_property(self):
        self.assertEqual(Network("x", 55).strength_class, 2)
        self.assertEqual(Network("x", 55).signal_icon, 'network-wireless-signal-ok')

    def test_details_dhcp(self):
        self.assertTrue(NetworkDetails("x").uses_dhcp)
        self.assertFalse(NetworkDetails("x", ip_address="10.0.0.2", prefix=24).uses_dhcp)


if __name__ == "__main__":
    unittest.main()

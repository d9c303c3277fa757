"""
Tests for the anomaly classifier rules.

Covers:
- Binding change and trust suppression
- Gateway precedence over the generic change rule
- Duplicate MAC detection and its exemptions
- Rapid change bursts and severity escalation
- Unsolicited bindings and vendor prefix mismatches
- Rule ordering and per-(address, rule) de-duplication
"""

from datetime import timedelta

import pytest

from arpguard.models.anomaly import AnomalyKind
from arpguard.models.binding import BindingDelta
from arpguard.services.change_rate import ChangeRateTracker
from arpguard.services.classifier import (
    SCOPE_GLOBAL,
    AnomalyClassifier,
    ClassifierSettings,
    rapid_change_severity,
    rate_key,
)
from arpguard.services.entry_store import EntryStore
from arpguard.services.mac_vendor import MacVendorLookup
from arpguard.services.trust_policy import TrustPolicy
from conftest import ATTACKER_MAC, GATEWAY_IP, GATEWAY_MAC, FakeClock, row

HOST_IP = "192.168.1.10"
HOST_MAC = "00:11:22:33:44:66"


class Harness:
    """Runs merge -> rate tracking -> classify the way a monitor cycle does."""

    def __init__(self):
        self.store = EntryStore()
        self.policy = TrustPolicy()
        self.policy.set_gateway_ip(GATEWAY_IP)
        self.rates = ChangeRateTracker()
        self.config = ClassifierSettings()
        self.classifier = AnomalyClassifier(MacVendorLookup(vendors={}))
        self.clock = FakeClock()

    def cycle(self, *rows, advance: float = 1.0):
        now = self.clock.advance(advance)
        had_baseline = self.store.has_baseline
        deltas = self.store.merge(rows, now)
        for delta in deltas:
            if delta.kind == BindingDelta.CHANGED:
                self.rates.record(rate_key(delta.ip_address, self.config.rapid_change_scope), now)
        return self.classifier.classify(
            deltas, self.store, self.policy, self.rates, self.config, now,
            baseline_established=had_baseline,
        )


@pytest.fixture
def harness():
    h = Harness()
    h.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, HOST_MAC))
    return h


def kinds(records):
    return [r.kind for r in records]


class TestBindingChange:
    """Generic MAC change on a non-gateway address."""

    def test_change_produces_one_record(self, harness):
        records = harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, ATTACKER_MAC))

        assert kinds(records) == [AnomalyKind.MAC_CHANGE]
        record = records[0]
        assert record.severity == 5
        assert record.ip_address == HOST_IP
        assert record.previous_mac == HOST_MAC
        assert record.current_mac == ATTACKER_MAC
        assert record.detected_at == harness.clock()

    def test_unchanged_snapshot_is_quiet(self, harness):
        assert harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, HOST_MAC)) == []

    def test_trusted_mac_suppresses_change(self, harness):
        harness.policy.add_trusted_mac(ATTACKER_MAC, HOST_IP)
        records = harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, ATTACKER_MAC))
        assert records == []

    def test_trust_for_other_address_does_not_suppress(self, harness):
        harness.policy.add_trusted_mac(ATTACKER_MAC, "192.168.1.99")
        records = harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, ATTACKER_MAC))
        assert kinds(records) == [AnomalyKind.MAC_CHANGE]

    def test_toggle_off_suppresses_change(self, harness):
        harness.config.alert_on_mac_change = False
        records = harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, ATTACKER_MAC))
        assert records == []


class TestGatewayPrecedence:
    """Gateway changes are high severity and never double-reported."""

    def test_gateway_change_is_severity_nine(self, harness):
        records = harness.cycle(row(GATEWAY_IP, ATTACKER_MAC), row(HOST_IP, HOST_MAC))

        assert kinds(records) == [AnomalyKind.GATEWAY_MAC_CHANGE]
        assert records[0].severity == 9
        assert records[0].previous_mac == GATEWAY_MAC

    def test_trusted_gateway_mac_is_quiet(self, harness):
        harness.policy.add_trusted_mac(ATTACKER_MAC, GATEWAY_IP)
        records = harness.cycle(row(GATEWAY_IP, ATTACKER_MAC), row(HOST_IP, HOST_MAC))
        assert records == []

    def test_gateway_toggle_off_does_not_fall_back_to_generic(self, harness):
        harness.config.alert_on_gateway_change = False
        records = harness.cycle(row(GATEWAY_IP, ATTACKER_MAC), row(HOST_IP, HOST_MAC))
        assert AnomalyKind.MAC_CHANGE not in kinds(records)
        assert AnomalyKind.GATEWAY_MAC_CHANGE not in kinds(records)


class TestDuplicateMac:
    """One hardware address answering for several IP addresses."""

    def test_spoofed_host_claims_gateway_mac(self, harness):
        records = harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, GATEWAY_MAC))

        assert kinds(records) == [
            AnomalyKind.MAC_CHANGE,
            AnomalyKind.DUPLICATE_MAC,
            AnomalyKind.DUPLICATE_MAC,
        ]
        duplicates = {r.ip_address: r for r in records[1:]}
        assert set(duplicates) == {GATEWAY_IP, HOST_IP}
        assert duplicates[HOST_IP].severity == 6
        assert duplicates[HOST_IP].current_mac == GATEWAY_MAC
        assert GATEWAY_IP in duplicates[HOST_IP].details

    def test_two_new_addresses_share_mac_in_first_cycle(self):
        h = Harness()
        records = h.cycle(row("10.0.0.7", "00:cc:cc:cc:cc:cc"), row("10.0.0.9", "00:cc:cc:cc:cc:cc"))

        assert kinds(records) == [AnomalyKind.DUPLICATE_MAC, AnomalyKind.DUPLICATE_MAC]
        assert [r.ip_address for r in records] == ["10.0.0.7", "10.0.0.9"]
        assert all(r.current_mac == "00:cc:cc:cc:cc:cc" for r in records)

    def test_duplicate_not_repeated_on_steady_state(self, harness):
        harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, GATEWAY_MAC))
        records = harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, GATEWAY_MAC))
        assert records == []

    def test_new_member_of_existing_group_reported_alone(self, harness):
        harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, GATEWAY_MAC))
        records = harness.cycle(row("192.168.1.30", GATEWAY_MAC, is_permanent=True))

        assert kinds(records) == [AnomalyKind.DUPLICATE_MAC]
        assert records[0].ip_address == "192.168.1.30"
        assert GATEWAY_IP in records[0].details
        assert HOST_IP in records[0].details

    def test_reported_again_after_toggle_reenabled(self, harness):
        harness.config.alert_on_duplicate_mac = False
        records = harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, GATEWAY_MAC))
        assert AnomalyKind.DUPLICATE_MAC not in kinds(records)

        harness.config.alert_on_duplicate_mac = True
        records = harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, GATEWAY_MAC))

        assert kinds(records) == [AnomalyKind.DUPLICATE_MAC, AnomalyKind.DUPLICATE_MAC]
        assert harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, GATEWAY_MAC)) == []

    def test_reported_again_after_multi_homed_removed(self, harness):
        harness.policy.add_multi_homed(HOST_IP)
        harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, GATEWAY_MAC))

        harness.policy.remove_multi_homed(HOST_IP)
        records = harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, GATEWAY_MAC))

        assert kinds(records) == [AnomalyKind.DUPLICATE_MAC, AnomalyKind.DUPLICATE_MAC]
        assert {r.ip_address for r in records} == {GATEWAY_IP, HOST_IP}

    def test_reported_again_when_sharing_returns(self, harness):
        harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, GATEWAY_MAC))
        harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, HOST_MAC))
        harness.policy.add_trusted_mac(GATEWAY_MAC, HOST_IP)

        records = harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, GATEWAY_MAC))

        assert kinds(records) == [AnomalyKind.DUPLICATE_MAC, AnomalyKind.DUPLICATE_MAC]

    def test_reset_forgets_reported_duplicates(self, harness):
        harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, GATEWAY_MAC))
        harness.classifier.reset()
        records = harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, GATEWAY_MAC))
        assert kinds(records) == [AnomalyKind.DUPLICATE_MAC, AnomalyKind.DUPLICATE_MAC]

    def test_multi_homed_address_exempt(self, harness):
        harness.policy.add_multi_homed(HOST_IP)
        records = harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, GATEWAY_MAC))
        assert AnomalyKind.DUPLICATE_MAC not in kinds(records)

    def test_multi_homed_peer_exempt(self, harness):
        harness.policy.add_multi_homed(GATEWAY_IP)
        records = harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, GATEWAY_MAC))
        assert AnomalyKind.DUPLICATE_MAC not in kinds(records)

    def test_broadcast_mac_exempt(self, harness):
        records = harness.cycle(
            row("192.168.1.255", "ff:ff:ff:ff:ff:ff"),
            row("192.168.2.255", "ff:ff:ff:ff:ff:ff"),
        )
        assert AnomalyKind.DUPLICATE_MAC not in kinds(records)

    def test_toggle_off(self, harness):
        harness.config.alert_on_duplicate_mac = False
        records = harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, GATEWAY_MAC))
        assert AnomalyKind.DUPLICATE_MAC not in kinds(records)


class TestRapidChanges:
    """Change bursts inside the lookback window."""

    def test_four_changes_over_threshold_three(self, harness):
        harness.config.rapid_change_threshold = 3
        harness.config.rapid_change_window = timedelta(seconds=60)

        rapid = []
        for i in range(4):
            mac = f"00:de:ad:be:ef:1{i}"
            rapid += [r for r in harness.cycle(row(HOST_IP, mac)) if r.kind == AnomalyKind.RAPID_CHANGES]

        assert len(rapid) == 1
        assert rapid[0].severity > 7

    def test_changes_outside_window_do_not_accumulate(self, harness):
        harness.config.rapid_change_threshold = 3
        harness.config.rapid_change_window = timedelta(seconds=60)

        rapid = []
        for i in range(4):
            records = harness.cycle(row(HOST_IP, f"00:de:ad:be:ef:2{i}"), advance=30)
            rapid += [r for r in records if r.kind == AnomalyKind.RAPID_CHANGES]
        assert rapid == []

    def test_global_scope_attributes_to_last_changed_address(self, harness):
        harness.config.rapid_change_threshold = 1
        harness.config.rapid_change_scope = SCOPE_GLOBAL

        records = harness.cycle(
            row(GATEWAY_IP, "00:de:ad:be:ef:30"),
            row(HOST_IP, "00:de:ad:be:ef:31"),
        )

        rapid = [r for r in records if r.kind == AnomalyKind.RAPID_CHANGES]
        assert len(rapid) == 1
        assert rapid[0].ip_address == HOST_IP

    def test_severity_escalates_and_caps(self):
        assert rapid_change_severity(4, 3) == 8
        assert rapid_change_severity(9, 3) == 10
        assert rapid_change_severity(100, 3) == 10


class TestUnsolicitedBinding:
    """Addresses that appear already resolved."""

    def test_new_unannounced_address(self, harness):
        records = harness.cycle(row("192.168.1.30", "00:11:22:33:44:30"))
        assert kinds(records) == [AnomalyKind.UNSOLICITED_BINDING]
        assert records[0].severity == 4

    def test_first_snapshot_is_baseline(self):
        h = Harness()
        assert h.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, HOST_MAC)) == []

    def test_pending_resolution_is_solicited(self, harness):
        harness.cycle(row("192.168.1.30", None))
        assert harness.cycle(row("192.168.1.30", "00:11:22:33:44:30")) == []

    def test_permanent_entry_is_not_unsolicited(self, harness):
        records = harness.cycle(row("192.168.1.30", "00:11:22:33:44:30", is_permanent=True))
        assert records == []


class TestPrefixMismatch:
    """Expected vendor prefixes per address or for the gateway role."""

    def test_gateway_role_prefix(self, harness):
        harness.policy.set_expected_prefixes("gateway", ["00:11:22"])
        records = harness.cycle(row(GATEWAY_IP, ATTACKER_MAC))

        assert kinds(records) == [AnomalyKind.GATEWAY_MAC_CHANGE, AnomalyKind.PREFIX_MISMATCH]
        assert records[1].severity == 8
        assert "00:de:ad" in records[1].details

    def test_matching_prefix_is_quiet(self, harness):
        harness.policy.set_expected_prefixes(HOST_IP, ["00:11:22"])
        harness.policy.add_trusted_mac("00:11:22:00:00:01", HOST_IP)
        assert harness.cycle(row(HOST_IP, "00:11:22:00:00:01")) == []

    def test_no_policy_no_check(self, harness):
        records = harness.cycle(row(HOST_IP, ATTACKER_MAC))
        assert AnomalyKind.PREFIX_MISMATCH not in kinds(records)


class TestRuleOrdering:

    def test_records_follow_rule_order(self, harness):
        harness.config.rapid_change_threshold = 1
        harness.cycle(row(HOST_IP, "00:de:ad:be:ef:40"))
        harness.policy.set_expected_prefixes(HOST_IP, ["00:11:22"])

        records = harness.cycle(row(GATEWAY_IP, GATEWAY_MAC), row(HOST_IP, GATEWAY_MAC))

        assert kinds(records) == [
            AnomalyKind.MAC_CHANGE,
            AnomalyKind.DUPLICATE_MAC,
            AnomalyKind.DUPLICATE_MAC,
            AnomalyKind.RAPID_CHANGES,
        ]

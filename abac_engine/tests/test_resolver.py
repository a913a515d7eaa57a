"""
Unit tests for the Attribute Resolver.
"""

import pytest
from unittest.mock import MagicMock

from prometheus_client import CollectorRegistry

from abac_engine.models import LookupStatus, ObjectRef, Request, SubjectAttributes
from abac_engine.resolver import AttributeResolver, ResolvedAttributes
from abac_engine.stores.memory import InMemoryAttributeStore
from shared.circuit_breaker import CircuitBreaker
from shared.errors import AttributeStoreError, AttributeStoreTimeout, ValidationError
from shared.metrics import MetricsCollector


@pytest.fixture
def store():
    return InMemoryAttributeStore.from_mapping({
        "subjects": {"alice": {"role": "Employee", "assigned_location": "floor_3"}},
        "devices": {"device_001": "11:22:33:44:55:66"},
    })


class TestAttributeResolver:
    """Lookup outcomes."""

    def test_resolve_subject_found(self, store):
        result = AttributeResolver(store).resolve_subject("alice")

        assert result.status == LookupStatus.FOUND
        assert result.value == SubjectAttributes(role="Employee", assigned_location="floor_3")

    def test_resolve_subject_not_found(self, store):
        result = AttributeResolver(store).resolve_subject("mallory")

        assert result.status == LookupStatus.NOT_FOUND
        assert result.value is None

    def test_resolve_device_pairing(self, store):
        result = AttributeResolver(store).resolve_device_pairing("device_001")

        assert result.found
        assert result.value.mac_address == "11:22:33:44:55:66"

    @pytest.mark.parametrize("bad_id", ["", None, 42])
    def test_empty_identifier_is_caller_error(self, store, bad_id):
        resolver = AttributeResolver(store)

        with pytest.raises(ValidationError):
            resolver.resolve_subject(bad_id)
        with pytest.raises(ValidationError):
            resolver.resolve_device_pairing(bad_id)

    def test_timeout_distinct_from_not_found(self):
        store = MagicMock()
        store.get_subject_attributes.side_effect = AttributeStoreTimeout()

        result = AttributeResolver(store).resolve_subject("alice", timeout=0.1)

        assert result.status == LookupStatus.TIMEOUT
        assert result.status.is_fault

    def test_store_error_is_unavailable(self):
        store = MagicMock()
        store.get_device_pairing.side_effect = AttributeStoreError("connection refused")

        result = AttributeResolver(store).resolve_device_pairing("device_001")

        assert result.status == LookupStatus.UNAVAILABLE

    def test_late_answer_is_discarded(self, store):
        ticks = iter([0.0, 5.0])
        resolver = AttributeResolver(store, clock=lambda: next(ticks))

        result = resolver.resolve_subject("alice", timeout=1.0)

        assert result.status == LookupStatus.TIMEOUT
        assert result.value is None

    def test_non_positive_timeout_skips_store(self):
        store = MagicMock()

        result = AttributeResolver(store).resolve_subject("alice", timeout=0)

        assert result.status == LookupStatus.TIMEOUT
        store.get_subject_attributes.assert_not_called()

    def test_open_breaker_blocks_store(self):
        store = MagicMock()
        store.get_subject_attributes.side_effect = AttributeStoreError("down")
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60.0, name="test")
        resolver = AttributeResolver(store, circuit_breaker=breaker)

        first = resolver.resolve_subject("alice")
        second = resolver.resolve_subject("alice")

        assert first.status == LookupStatus.UNAVAILABLE
        assert second.status == LookupStatus.UNAVAILABLE
        assert store.get_subject_attributes.call_count == 1

    def test_lookups_are_counted(self, store):
        registry = CollectorRegistry()
        resolver = AttributeResolver(store, metrics=MetricsCollector("abac-test", registry))

        resolver.resolve_subject("alice")
        resolver.resolve_subject("mallory")

        assert registry.get_sample_value(
            "abac_attribute_lookups_total", {"kind": "subject", "status": "found"}
        ) == 1.0
        assert registry.get_sample_value(
            "abac_attribute_lookups_total", {"kind": "subject", "status": "not_found"}
        ) == 1.0


class TestResolvedAttributes:
    """Per-evaluation lazy memo."""

    def test_subject_memoized_within_evaluation(self, store):
        spy = MagicMock(wraps=store)
        request = Request(subject_id="alice", object=ObjectRef(device_type="Thermostat"))
        attributes = ResolvedAttributes(request, AttributeResolver(spy))

        assert attributes.subject.role == "Employee"
        assert attributes.subject.role == "Employee"
        spy.get_subject_attributes.assert_called_once()
        assert [r.status for r in attributes.lookups] == [LookupStatus.FOUND]

    def test_no_device_id_means_no_pairing(self, store):
        spy = MagicMock(wraps=store)
        request = Request(subject_id="alice", object=ObjectRef(device_type="Smart_Lock"))
        attributes = ResolvedAttributes(request, AttributeResolver(spy))

        assert attributes.device_pairing is None
        spy.get_device_pairing.assert_not_called()
        assert attributes.lookups == []

    def test_fault_and_miss_flags(self):
        store = MagicMock()
        store.get_subject_attributes.return_value = None
        store.get_device_pairing.side_effect = AttributeStoreTimeout()
        request = Request(subject_id="ghost", object=ObjectRef(device_type="Smart_Lock", device_id="device_001"))
        attributes = ResolvedAttributes(request, AttributeResolver(store))

        assert attributes.subject is None
        assert attributes.had_miss and not attributes.had_fault
        assert attributes.device_pairing is None
        assert attributes.had_fault

    def test_expired_deadline_times_out(self, store):
        request = Request(subject_id="alice", object=ObjectRef(device_type="Thermostat"))
        attributes = ResolvedAttributes(request, AttributeResolver(store), deadline=10.0, clock=lambda: 11.0)

        assert attributes.subject is None
        assert attributes.lookups[0].status == LookupStatus.TIMEOUT

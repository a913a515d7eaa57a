"""
Unit tests for configuration, errors, the circuit breaker and engine bootstrap.
"""

import pytest
from prometheus_client import REGISTRY, CollectorRegistry

from abac_engine.bootstrap import build_engine, build_store
from abac_engine.models import ObjectRef, Request
from abac_engine.stores import InMemoryAttributeStore, RedisAttributeStore
from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from shared.config import EngineConfig, get_config
from shared.errors import ConfigurationError, ValidationError
from shared.metrics import get_metrics_collector
from shared.logging import add_correlation_context, request_id_var, set_request_id, set_subject_context


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def fail():
    raise RuntimeError("store down")


class TestCircuitBreaker:
    """Test cases for CircuitBreaker."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def breaker(self, clock):
        return CircuitBreaker(failure_threshold=2, recovery_timeout=10.0, name="test", clock=clock)

    def test_opens_after_threshold(self, breaker):
        for _ in range(2):
            with pytest.raises(RuntimeError):
                breaker.call(fail)

        assert breaker.is_open()
        with pytest.raises(CircuitBreakerOpenError):
            breaker.call(lambda: "ok")

    def test_half_open_success_closes(self, breaker, clock):
        for _ in range(2):
            with pytest.raises(RuntimeError):
                breaker.call(fail)

        clock.now = 11.0

        assert breaker.call(lambda: "ok") == "ok"
        assert breaker.get_state()["state"] == "closed"
        assert breaker.get_state()["failure_count"] == 0

    def test_half_open_failure_reopens(self, breaker, clock):
        for _ in range(2):
            with pytest.raises(RuntimeError):
                breaker.call(fail)

        clock.now = 11.0
        with pytest.raises(RuntimeError):
            breaker.call(fail)

        assert breaker.is_open()

    def test_success_resets_failure_count(self, breaker):
        with pytest.raises(RuntimeError):
            breaker.call(fail)
        breaker.call(lambda: None)
        with pytest.raises(RuntimeError):
            breaker.call(fail)

        assert not breaker.is_open()


class TestConfiguration:
    """Test cases for EngineConfig."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ABAC_ATTRIBUTE_STORE", raising=False)
        config = EngineConfig(_env_file=None)

        assert config.attribute_store == "memory"
        assert config.resolver_timeout_seconds == 0.5
        assert config.policy_file is None

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("ABAC_RESOLVER_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("ABAC_ATTRIBUTE_STORE", "redis")

        config = get_config()

        assert config.resolver_timeout_seconds == 2.5
        assert config.attribute_store == "redis"

    def test_explicit_overrides(self):
        config = get_config(enable_metrics=False, log_level="debug")

        assert config.enable_metrics is False
        assert config.log_level == "debug"


class TestErrors:
    """Test cases for the error hierarchy."""

    def test_to_response(self):
        error = ConfigurationError("bad policy", details={"rule": "r"})

        response = error.to_response()

        assert response.code == "CONFIGURATION_ERROR"
        assert response.message == "bad policy"
        assert response.details == {"rule": "r"}

    def test_validation_error_code(self):
        assert ValidationError().code == "VALIDATION_ERROR"


class TestBootstrap:
    """Engine assembly from configuration."""

    def test_build_store(self):
        assert isinstance(build_store(get_config(attribute_store="memory")), InMemoryAttributeStore)
        assert isinstance(build_store(get_config(attribute_store="redis")), RedisAttributeStore)

    def test_unknown_store_rejected(self):
        with pytest.raises(ConfigurationError):
            build_store(get_config(attribute_store="ldap"))

    def test_build_engine_with_bundled_policy(self):
        store = InMemoryAttributeStore.from_mapping({
            "subjects": {"alice": {"role": "Employee", "assigned_location": "floor_3"}}
        })
        config = get_config(attribute_store="memory", policy_file=None)

        engine = build_engine(config, store=store, metrics_registry=CollectorRegistry())

        assert len(engine.rule_set) == 3
        assert engine.default_timeout == config.resolver_timeout_seconds
        assert engine.resolver.circuit_breaker is not None
        decision = engine.evaluate(Request(
            subject_id="alice",
            object=ObjectRef(device_type="Thermostat"),
            context={"timeOfDay": "working_hours", "location": "floor_3"}
        ))
        assert decision.permit is True

    def test_default_metrics_exported_on_global_registry(self):
        labels = {"decision": "deny", "reason": "attribute_not_found"}
        before = REGISTRY.get_sample_value("abac_decisions_total", labels) or 0.0

        engine = build_engine(get_config(attribute_store="memory", policy_file=None, enable_metrics=True))
        decision = engine.evaluate(Request(
            subject_id="nobody",
            object=ObjectRef(device_type="Thermostat"),
            context={"timeOfDay": "working_hours", "location": "floor_3"}
        ))

        assert decision.reason.value == "attribute_not_found"
        assert REGISTRY.get_sample_value("abac_decisions_total", labels) == before + 1
        assert engine.metrics is get_metrics_collector("abac")

    def test_build_engine_rejects_bad_policy_file(self, tmp_path):
        policy = tmp_path / "policy.yaml"
        policy.write_text("rules:\n  - name: r\n    predicates:\n      - name: not_registered\n")

        with pytest.raises(ConfigurationError):
            build_engine(get_config(policy_file=str(policy), enable_metrics=False))


class TestLoggingContext:
    """Correlation fields added to log events."""

    def test_request_and_subject_ids_added(self):
        request_id = set_request_id("req-123")
        set_subject_context("alice")
        try:
            event = add_correlation_context(None, "info", {"event": "Decision made"})
        finally:
            set_subject_context(None)
            request_id_var.set(None)

        assert request_id == "req-123"
        assert event["request_id"] == "req-123"
        assert event["subject_id"] == "alice"

    def test_generated_request_id(self):
        try:
            request_id = set_request_id()
        finally:
            request_id_var.set(None)

        assert len(request_id) == 36

"""
Engine assembly from configuration.
"""

from typing import Optional

from prometheus_client import CollectorRegistry

from shared.circuit_breaker import CircuitBreaker
from shared.config import EngineConfig, get_config
from shared.errors import ConfigurationError
from shared.logging import configure_logging, get_logger
from shared.metrics import get_metrics_collector

from .engine import DecisionEngine
from .predicates import PredicateRegistry, build_default_registry
from .resolver import AttributeResolver, AttributeStore
from .rules.loader import BUNDLED_POLICY, load_rule_set_file
from .stores import InMemoryAttributeStore, RedisAttributeStore

logger = get_logger("abac.bootstrap")


def build_store(config: EngineConfig) -> AttributeStore:
    """Create the attribute store selected by ``config.attribute_store``."""
    if config.attribute_store == "memory":
        return InMemoryAttributeStore()
    if config.attribute_store == "redis":
        return RedisAttributeStore.from_url(
            config.redis_url,
            key_prefix=config.redis_key_prefix,
            socket_timeout=config.resolver_timeout_seconds
        )
    raise ConfigurationError(
        f"Unknown attribute store '{config.attribute_store}'",
        details={"attribute_store": config.attribute_store}
    )


def build_engine(config: Optional[EngineConfig] = None,
                 store: Optional[AttributeStore] = None,
                 registry: Optional[PredicateRegistry] = None,
                 metrics_registry: Optional[CollectorRegistry] = None) -> DecisionEngine:
    """Wire store, breaker, resolver, metrics and policy into an engine."""
    config = config or get_config()
    configure_logging(config.service_name, config.log_level)

    metrics = None
    if config.enable_metrics:
        metrics = get_metrics_collector(config.service_name, metrics_registry)

    breaker = CircuitBreaker(
        failure_threshold=config.breaker_failure_threshold,
        recovery_timeout=config.breaker_recovery_timeout,
        name="attribute_store"
    )
    resolver = AttributeResolver(store or build_store(config), circuit_breaker=breaker, metrics=metrics)

    registry = registry or build_default_registry()
    policy_path = config.policy_file or BUNDLED_POLICY
    rule_set = load_rule_set_file(policy_path, registry)

    engine = DecisionEngine(
        resolver,
        registry=registry,
        rule_set=rule_set,
        metrics=metrics,
        default_timeout=config.resolver_timeout_seconds
    )
    logger.info(
        "Decision engine ready",
        env=config.env,
        attribute_store=config.attribute_store,
        policy=str(policy_path),
        rules=len(rule_set)
    )
    return engine

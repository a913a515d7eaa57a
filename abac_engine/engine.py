"""
Decision engine: evaluates access requests against the active rule set.
"""

import time
import threading
from pathlib import Path
from typing import Any, List, Mapping, Optional, Union

from opentelemetry import trace
from pydantic import ValidationError as PydanticValidationError

from shared.config import EngineConfig
from shared.errors import ConfigurationError
from shared.logging import get_logger, reset_subject_context, set_subject_context
from shared.metrics import MetricsCollector

from .models import Decision, DecisionReason, ObjectRef, Request, RequestSchema, RuleTrace
from .predicates import PredicateRegistry, build_default_registry
from .resolver import AttributeResolver, ResolvedAttributes
from .rules.loader import load_rule_set_file
from .rules.models import Rule, RuleSet

tracer = trace.get_tracer("abac.engine")

DEFAULT_TIMEOUT = EngineConfig.model_fields["resolver_timeout_seconds"].default


class DecisionEngine:
    """Default-deny, first-permit-wins evaluator.

    The active rule set is an immutable snapshot replaced as a whole by
    :meth:`load_rule_set`; each evaluation reads the reference once, so an
    in-flight evaluation never observes a half-applied reload.
    """

    def __init__(self, resolver: AttributeResolver,
                 registry: Optional[PredicateRegistry] = None,
                 rule_set: Optional[RuleSet] = None,
                 metrics: Optional[MetricsCollector] = None,
                 default_timeout: Optional[float] = None):
        self.resolver = resolver
        self.registry = registry if registry is not None else build_default_registry()
        self.metrics = metrics
        self.default_timeout = default_timeout if default_timeout is not None else DEFAULT_TIMEOUT
        self.logger = get_logger("abac.engine")

        self._reload_lock = threading.Lock()
        self._rule_set = RuleSet()
        if rule_set is not None:
            self.load_rule_set(rule_set)

    @property
    def rule_set(self) -> RuleSet:
        return self._rule_set

    def load_rule_set(self, rule_set: RuleSet) -> RuleSet:
        """Validate and atomically activate ``rule_set``.

        On ``ConfigurationError`` the previously active rule set is kept.
        Returns the rule set that was replaced.
        """
        with self._reload_lock:
            try:
                if not isinstance(rule_set, RuleSet):
                    raise ConfigurationError("load_rule_set expects a RuleSet")
                self.registry.validate(rule_set)
            except ConfigurationError as e:
                self.logger.error(
                    "Rule set rejected, keeping active rule set",
                    error=e.to_response().model_dump(),
                    active_version=self._rule_set.version
                )
                if self.metrics is not None:
                    self.metrics.record_rule_set_load("rejected")
                raise

            previous, self._rule_set = self._rule_set, rule_set

        self.logger.info(
            "Rule set loaded",
            rules=len(rule_set),
            version=rule_set.version,
            previous_version=previous.version
        )
        if self.metrics is not None:
            self.metrics.record_rule_set_load("loaded", len(rule_set))
        return previous

    def reload_from_file(self, path: Union[str, Path]) -> RuleSet:
        """Load a policy file and activate it."""
        try:
            rule_set = load_rule_set_file(path)
        except ConfigurationError:
            if self.metrics is not None:
                self.metrics.record_rule_set_load("rejected")
            raise
        return self.load_rule_set(rule_set)

    def evaluate_payload(self, payload: Mapping[str, Any], timeout: Optional[float] = None,
                         explain: bool = False) -> Decision:
        """Evaluate a wire-format request mapping."""
        try:
            request = RequestSchema.model_validate(payload).to_request()
        except PydanticValidationError as e:
            self.logger.info("Malformed request payload", errors=e.error_count())
            return self._finish(Decision.deny(DecisionReason.STRUCTURAL_ERROR), time.perf_counter())
        return self.evaluate(request, timeout=timeout, explain=explain)

    def evaluate(self, request: Request, timeout: Optional[float] = None, explain: bool = False) -> Decision:
        """Evaluate ``request`` against the active rule set.

        ``timeout`` bounds the total time spent on attribute lookups; it
        defaults to the engine's ``default_timeout``. With ``explain`` every
        rule is evaluated for the trace, the outcome is unchanged.
        """
        start_time = time.perf_counter()
        rule_set = self._rule_set

        with tracer.start_as_current_span("abac.evaluate") as span:
            problem = self._structural_problem(request)
            if problem is not None:
                self.logger.info("Malformed request", problem=problem)
                return self._finish(Decision.deny(DecisionReason.STRUCTURAL_ERROR), start_time, span)

            subject_token = set_subject_context(request.subject_id)
            try:
                if not rule_set.rules:
                    return self._finish(Decision.deny(DecisionReason.EMPTY_RULE_SET), start_time, span)

                budget = timeout if timeout is not None else self.default_timeout
                deadline = time.monotonic() + budget
                attributes = ResolvedAttributes(request, self.resolver, deadline)
                decision = self._evaluate_rules(rule_set, request, attributes, explain)
            except Exception as e:
                self.logger.error("Rule evaluation error", error=str(e), exc_info=True)
                decision = Decision.deny(DecisionReason.INTERNAL_ERROR)
            finally:
                reset_subject_context(subject_token)

            return self._finish(decision, start_time, span)

    def _evaluate_rules(self, rule_set: RuleSet, request: Request, attributes: ResolvedAttributes,
                        explain: bool) -> Decision:
        traces: List[RuleTrace] = []
        matched: Optional[str] = None

        for rule in rule_set.rules:
            failed = self._evaluate_rule(rule, request, attributes)
            traces.append(RuleTrace(rule=rule.name, satisfied=failed is None, failed_predicate=failed))
            if failed is None and matched is None:
                matched = rule.name
                if not explain:
                    break

        lookups = tuple(attributes.lookups)
        if matched is not None:
            return Decision(permit=True, matched_rule=matched, trace=tuple(traces), lookups=lookups)

        if attributes.had_fault:
            reason = DecisionReason.RESOLVER_UNAVAILABLE
        elif attributes.had_miss:
            reason = DecisionReason.ATTRIBUTE_NOT_FOUND
        else:
            reason = DecisionReason.NO_MATCHING_RULE
        return Decision.deny(reason, trace=tuple(traces), lookups=lookups)

    def _evaluate_rule(self, rule: Rule, request: Request, attributes: ResolvedAttributes) -> Optional[str]:
        """Return the name of the first failing predicate, or None if the rule holds."""
        for call in rule.predicates:
            spec = self.registry.get(call.name)
            if spec is None or not spec(request, attributes, call.params):
                return call.name
        return None

    @staticmethod
    def _structural_problem(request: Any) -> Optional[str]:
        if not isinstance(request, Request):
            return "request must be a Request"
        if not isinstance(request.subject_id, str) or not request.subject_id:
            return "subject_id is required"
        obj = request.object
        if not isinstance(obj, ObjectRef) or not isinstance(obj.device_type, str) or not obj.device_type:
            return "object.device_type is required"
        if obj.device_id is not None and (not isinstance(obj.device_id, str) or not obj.device_id):
            return "object.device_id must be a non-empty string when given"
        if not isinstance(request.context, Mapping) or not isinstance(request.extra, Mapping):
            return "context and extra must be mappings"
        return None

    def _finish(self, decision: Decision, start_time: float, span=None) -> Decision:
        duration = time.perf_counter() - start_time
        reason = decision.reason.value if decision.reason else None

        if span is not None:
            span.set_attribute("abac.permit", decision.permit)
            if decision.matched_rule:
                span.set_attribute("abac.matched_rule", decision.matched_rule)
            if reason:
                span.set_attribute("abac.reason", reason)

        self.logger.debug(
            "Decision made",
            permit=decision.permit,
            matched_rule=decision.matched_rule,
            reason=reason,
            evaluation_time_ms=duration * 1000
        )
        if self.metrics is not None:
            self.metrics.record_decision(decision.permit, reason, duration)
        return decision

    def get_engine_stats(self) -> Mapping[str, Any]:
        """Get engine statistics."""
        rule_set = self._rule_set
        return {
            "total_rules": len(rule_set),
            "version": rule_set.version,
            "rules": [rule.name for rule in rule_set.rules],
            "predicates": self.registry.names()
        }

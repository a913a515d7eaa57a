"""
Attribute-based access control decision engine.

Evaluates an access request against an ordered rule set and subject,
object and context attributes, and returns a deterministic permit/deny
decision. It provides:

- models: Request, attribute records and Decision.
- resolver: Attribute lookups against an injected store, failing closed.
- predicates: Registry of named predicate checks.
- rules: Immutable rule model and policy loading.
- engine: Default-deny, first-permit-wins evaluation.
- stores: In-memory and Redis attribute stores.

Guidelines:
- The engine is stateless per call; the rule set is replaced atomically.
- Any missing datum, timeout or fault resolves to deny, never to permit.
"""

from .engine import DecisionEngine
from .models import Decision, DecisionReason, DevicePairing, ObjectRef, Request, SubjectAttributes
from .predicates import PredicateRegistry, build_default_registry
from .resolver import AttributeResolver
from .rules import PredicateCall, Rule, RuleSet, load_rule_set, load_rule_set_file

__all__ = [
    "AttributeResolver",
    "Decision",
    "DecisionEngine",
    "DecisionReason",
    "DevicePairing",
    "ObjectRef",
    "PredicateCall",
    "PredicateRegistry",
    "Request",
    "Rule",
    "RuleSet",
    "SubjectAttributes",
    "build_default_registry",
    "load_rule_set",
    "load_rule_set_file",
]

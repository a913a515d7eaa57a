"""
Rule data models for the decision engine.
"""

from typing import Dict, Any, Mapping, Optional, List, Tuple
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field

from shared.errors import ConfigurationError

from ..models import freeze_value


@dataclass(frozen=True)
class PredicateCall:
    """Invocation of a registered predicate with fixed parameters."""
    name: str
    params: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        # Parameters are copied so a loaded rule set cannot change under the engine
        object.__setattr__(self, "params", freeze_value(dict(self.params)))

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Rule:
    """A named conjunction of predicate calls granting one access path."""
    name: str
    predicates: Tuple[PredicateCall, ...]
    description: Optional[str] = None

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("Rule name must not be empty")
        object.__setattr__(self, "predicates", tuple(self.predicates))
        if not self.predicates:
            # An empty conjunction would permit everything
            raise ConfigurationError(f"Rule '{self.name}' has no predicates", details={"rule": self.name})


@dataclass(frozen=True)
class RuleSet:
    """Ordered, immutable collection of rules forming one policy version."""
    rules: Tuple[Rule, ...] = ()
    version: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "rules", tuple(self.rules))
        seen = set()
        for rule in self.rules:
            if rule.name in seen:
                raise ConfigurationError(f"Duplicate rule name '{rule.name}'", details={"rule": rule.name})
            seen.add(rule.name)

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self):
        return iter(self.rules)

    def get(self, name: str) -> Optional[Rule]:
        for rule in self.rules:
            if rule.name == name:
                return rule
        return None


class PredicateCallSpec(BaseModel):
    """Policy document model for a predicate call."""
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, description="Registered predicate name")
    params: Dict[str, Any] = Field(default_factory=dict, description="Predicate parameters")


class RuleSpec(BaseModel):
    """Policy document model for a rule."""
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, description="Rule name")
    description: Optional[str] = Field(None, description="Rule description")
    predicates: List[PredicateCallSpec] = Field(..., min_length=1, description="Predicates, all must hold")

    def to_rule(self) -> Rule:
        return Rule(
            name=self.name,
            description=self.description,
            predicates=tuple(PredicateCall(p.name, dict(p.params)) for p in self.predicates)
        )


class RuleSetSpec(BaseModel):
    """Policy document model for a rule set."""
    model_config = ConfigDict(extra="forbid")

    version: Optional[str] = Field(None, description="Policy version label")
    rules: List[RuleSpec] = Field(default_factory=list, description="Rules in evaluation order")

    def to_rule_set(self) -> RuleSet:
        return RuleSet(rules=tuple(spec.to_rule() for spec in self.rules), version=self.version)

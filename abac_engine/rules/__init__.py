"""
Rules package.

Defines the immutable rule model and the policy loader used by the
decision engine. A rule set is an ordered tuple of rules; each rule is a
conjunction of calls to registered predicates.

Modules of interest:
- models: PredicateCall, Rule, RuleSet and their policy document models.
- loader: Builds rule sets from mappings and YAML/JSON policy files.
"""

from .models import PredicateCall, Rule, RuleSet
from .loader import load_rule_set, load_rule_set_file

__all__ = ["PredicateCall", "Rule", "RuleSet", "load_rule_set", "load_rule_set_file"]

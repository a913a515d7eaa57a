"""
Policy loading: builds rule sets from mappings, YAML or JSON documents.
"""

from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from shared.errors import ConfigurationError
from shared.logging import get_logger

from ..predicates import PredicateRegistry
from .models import RuleSet, RuleSetSpec

logger = get_logger("abac.rules.loader")

BUNDLED_POLICY = Path(__file__).resolve().parent.parent / "policies" / "smart_building.yaml"


def load_rule_set(document: Mapping[str, Any], registry: Optional[PredicateRegistry] = None) -> RuleSet:
    """Build a rule set from a parsed policy document.

    When ``registry`` is given every predicate call is checked against it, so
    an unknown predicate or a bad parameter is rejected here rather than at
    evaluation time.
    """
    if not isinstance(document, Mapping):
        raise ConfigurationError("Policy document must be a mapping")

    try:
        rule_set = RuleSetSpec.model_validate(dict(document)).to_rule_set()
    except PydanticValidationError as e:
        raise ConfigurationError("Invalid policy document", details={"errors": e.errors(include_url=False)}) from e

    if registry is not None:
        registry.validate(rule_set)
    return rule_set


def load_rule_set_file(path: Union[str, Path], registry: Optional[PredicateRegistry] = None) -> RuleSet:
    """Load a rule set from a YAML or JSON file."""
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            document = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read policy file {path}", details={"path": str(path)}) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Cannot parse policy file {path}", details={"path": str(path), "error": str(e)}) from e

    rule_set = load_rule_set(document or {}, registry)
    logger.info("Policy file loaded", path=str(path), rules=len(rule_set), version=rule_set.version)
    return rule_set

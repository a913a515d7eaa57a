"""
Predicate library.

A predicate is a named, pure check ``func(request, attributes, **params) -> bool``.
Its keyword-only parameters are what a rule may pass to it; those without a
default are required. Every predicate treats an absent datum as ``False``.
"""

import inspect
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Union
from dataclasses import dataclass, field

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from shared.errors import ConfigurationError
from shared.logging import get_logger

from .models import Request, freeze_value
from .resolver import ResolvedAttributes


PredicateFunc = Callable[..., bool]


@dataclass(frozen=True)
class PredicateSpec:
    """A registered predicate and the parameters it accepts."""
    name: str
    func: PredicateFunc
    required_params: FrozenSet[str]
    optional_params: FrozenSet[str]
    param_types: Mapping[str, TypeAdapter] = field(default_factory=dict, compare=False)

    @property
    def params(self) -> FrozenSet[str]:
        return self.required_params | self.optional_params

    def __call__(self, request: Request, attributes: ResolvedAttributes, params: Mapping[str, Any]) -> bool:
        return self.func(request, attributes, **params) is True


def _describe_params(func: PredicateFunc):
    required, optional, types = set(), set(), {}
    for param in inspect.signature(func).parameters.values():
        if param.kind != inspect.Parameter.KEYWORD_ONLY:
            continue
        (required if param.default is inspect.Parameter.empty else optional).add(param.name)
        # Unannotated or string annotations are not checked
        if param.annotation is not inspect.Parameter.empty and not isinstance(param.annotation, str):
            types[param.name] = TypeAdapter(param.annotation)
    return frozenset(required), frozenset(optional), types


class PredicateRegistry:
    """Registry of named predicates, extended without touching the engine."""

    def __init__(self):
        self._predicates: Dict[str, PredicateSpec] = {}
        self.logger = get_logger("abac.predicates")

    def register(self, name: str, func: PredicateFunc) -> PredicateSpec:
        """Register ``func`` under ``name``."""
        if name in self._predicates:
            raise ConfigurationError(f"Predicate '{name}' is already registered", details={"predicate": name})
        required, optional, types = _describe_params(func)
        spec = PredicateSpec(name, func, required, optional, types)
        self._predicates[name] = spec
        self.logger.debug("Predicate registered", predicate=name, params=sorted(spec.params))
        return spec

    def predicate(self, name: str) -> Callable[[PredicateFunc], PredicateFunc]:
        """Decorator form of :meth:`register`."""
        def decorator(func: PredicateFunc) -> PredicateFunc:
            self.register(name, func)
            return func
        return decorator

    def get(self, name: str) -> Optional[PredicateSpec]:
        return self._predicates.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._predicates

    def names(self):
        return sorted(self._predicates)

    def copy(self) -> "PredicateRegistry":
        clone = PredicateRegistry()
        clone._predicates = dict(self._predicates)
        return clone

    def validate_call(self, rule_name: str, predicate: str, params: Mapping[str, Any]):
        """Check a single predicate invocation against its registration."""
        spec = self._predicates.get(predicate)
        details = {"rule": rule_name, "predicate": predicate}
        if spec is None:
            raise ConfigurationError(f"Rule '{rule_name}' references unknown predicate '{predicate}'", details)

        missing = spec.required_params - set(params)
        if missing:
            raise ConfigurationError(
                f"Rule '{rule_name}': predicate '{predicate}' is missing parameters {sorted(missing)}", details
            )

        unexpected = set(params) - spec.params
        if unexpected:
            raise ConfigurationError(
                f"Rule '{rule_name}': predicate '{predicate}' got unexpected parameters {sorted(unexpected)}", details
            )

        for param, value in params.items():
            adapter = spec.param_types.get(param)
            if adapter is None:
                continue
            try:
                adapter.validate_python(value)
            except PydanticValidationError as e:
                raise ConfigurationError(
                    f"Rule '{rule_name}': predicate '{predicate}' got an invalid value for '{param}'",
                    {**details, "param": param, "error": e.errors()[0]["msg"]}
                ) from e

    def validate(self, rule_set) -> None:
        """Raise ``ConfigurationError`` if any rule in ``rule_set`` cannot be evaluated."""
        for rule in rule_set.rules:
            for call in rule.predicates:
                self.validate_call(rule.name, call.name, call.params)


def _one_of(value: Union[str, Iterable[str]]) -> FrozenSet[str]:
    if isinstance(value, str):
        return frozenset([value])
    return frozenset(value)


def time_window_valid(request: Request, attributes: ResolvedAttributes, *, window: str,
                      key: str = "timeOfDay") -> bool:
    """Request context places the request inside the named time window."""
    time_of_day = request.context.get(key)
    return time_of_day is not None and time_of_day == window


def location_matches(request: Request, attributes: ResolvedAttributes, *, key: str = "location") -> bool:
    """Request location equals the subject's assigned location."""
    location = request.context.get(key)
    if location is None:
        return False
    subject = attributes.subject
    if subject is None or subject.assigned_location is None:
        return False
    return location == subject.assigned_location


def device_pairing_matches(request: Request, attributes: ResolvedAttributes, *, claim_key: str = "mac") -> bool:
    """Claimed MAC address matches the one the target device is paired with."""
    claimed = request.extra.get(claim_key)
    if not isinstance(claimed, str) or not claimed:
        return False
    pairing = attributes.device_pairing
    if pairing is None or not pairing.mac_address:
        return False
    return pairing.mac_address.lower() == claimed.lower()


def role_is(request: Request, attributes: ResolvedAttributes, *, roles: Union[str, List[str]]) -> bool:
    """Subject holds one of the given roles."""
    subject = attributes.subject
    if subject is None or not subject.role:
        return False
    return subject.role in _one_of(roles)


def device_type_is(request: Request, attributes: ResolvedAttributes, *,
                   device_types: Union[str, List[str]]) -> bool:
    """Target device is of one of the given types."""
    return request.object.device_type in _one_of(device_types)


def context_equals(request: Request, attributes: ResolvedAttributes, *, key: str, value: Any) -> bool:
    """A context attribute is present and equal to ``value``."""
    if key not in request.context or request.context[key] is None:
        return False
    return freeze_value(request.context[key]) == value


def build_default_registry() -> PredicateRegistry:
    """Registry holding the built-in predicates."""
    registry = PredicateRegistry()
    registry.register("time_window_valid", time_window_valid)
    registry.register("location_matches", location_matches)
    registry.register("device_pairing_matches", device_pairing_matches)
    registry.register("role_is", role_is)
    registry.register("device_type_is", device_type_is)
    registry.register("context_equals", context_equals)
    return registry

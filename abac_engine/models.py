"""
Request, attribute and decision data models for the decision engine.
"""

from types import MappingProxyType
from typing import Dict, Any, Optional, Tuple
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class DecisionReason(str, Enum):
    """Diagnostic codes attached to deny decisions."""
    STRUCTURAL_ERROR = "structural_error"
    EMPTY_RULE_SET = "empty_rule_set"
    NO_MATCHING_RULE = "no_matching_rule"
    ATTRIBUTE_NOT_FOUND = "attribute_not_found"
    RESOLVER_UNAVAILABLE = "resolver_unavailable"
    INTERNAL_ERROR = "internal_error"


class LookupStatus(str, Enum):
    """Outcome of one attribute store lookup."""
    FOUND = "found"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"

    @property
    def is_fault(self) -> bool:
        return self in (LookupStatus.TIMEOUT, LookupStatus.UNAVAILABLE)


def freeze_value(value: Any) -> Any:
    """Read-only copy of a parameter value: lists become tuples, mappings proxies."""
    if isinstance(value, (list, tuple)):
        return tuple(freeze_value(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(freeze_value(item) for item in value)
    if isinstance(value, (dict, MappingProxyType)):
        return MappingProxyType({key: freeze_value(item) for key, item in value.items()})
    return value


@dataclass(frozen=True)
class ObjectRef:
    """The object an access request targets."""
    device_type: str
    device_id: Optional[str] = None


@dataclass(frozen=True)
class Request:
    """A single access request. Built per evaluation, never stored."""
    subject_id: str
    object: ObjectRef
    context: Dict[str, Any] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SubjectAttributes:
    """Subject attributes as held by the attribute store."""
    role: str
    assigned_location: Optional[str] = None


@dataclass(frozen=True)
class DevicePairing:
    """Device to MAC address pairing as held by the attribute store."""
    device_id: str
    mac_address: str


@dataclass(frozen=True)
class LookupRecord:
    """Diagnostic record of an attribute lookup made during evaluation."""
    kind: str
    key: str
    status: LookupStatus


@dataclass(frozen=True)
class RuleTrace:
    """Diagnostic record of one rule evaluation."""
    rule: str
    satisfied: bool
    failed_predicate: Optional[str] = None


@dataclass(frozen=True)
class Decision:
    """Result of evaluating a request against the active rule set."""
    permit: bool
    matched_rule: Optional[str] = None
    reason: Optional[DecisionReason] = None
    trace: Tuple[RuleTrace, ...] = ()
    lookups: Tuple[LookupRecord, ...] = ()

    @classmethod
    def deny(cls, reason: DecisionReason, trace: Tuple[RuleTrace, ...] = (),
             lookups: Tuple[LookupRecord, ...] = ()) -> "Decision":
        return cls(permit=False, reason=reason, trace=trace, lookups=lookups)

    def to_schema(self) -> "DecisionSchema":
        return DecisionSchema(
            permit=self.permit,
            matched_rule=self.matched_rule,
            reason=self.reason.value if self.reason else None
        )

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation: ``{permit, matchedRule, reason}``."""
        return self.to_schema().model_dump(by_alias=True)


class ObjectSchema(BaseModel):
    """Wire model for the request object."""
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    device_type: str = Field(..., alias="deviceType", min_length=1, description="Device type tag")
    device_id: Optional[str] = Field(None, alias="deviceId", description="Device identifier")


class RequestSchema(BaseModel):
    """Wire model for an access request."""
    model_config = ConfigDict(populate_by_name=True)

    subject_id: str = Field(..., alias="subjectId", min_length=1, description="Subject identifier")
    object: ObjectSchema
    context: Dict[str, Any] = Field(default_factory=dict, description="Context attributes")
    extra: Dict[str, Any] = Field(default_factory=dict, description="Predicate-specific inputs")

    def to_request(self) -> Request:
        return Request(
            subject_id=self.subject_id,
            object=ObjectRef(device_type=self.object.device_type, device_id=self.object.device_id),
            context=dict(self.context),
            extra=dict(self.extra)
        )


class DecisionSchema(BaseModel):
    """Wire model for a decision."""
    model_config = ConfigDict(populate_by_name=True)

    permit: bool = Field(..., description="Whether access is granted")
    matched_rule: Optional[str] = Field(None, alias="matchedRule", description="First rule that permitted")
    reason: Optional[str] = Field(None, description="Diagnostic code when access is denied")

"""
Attribute resolution for the decision engine.

The resolver is the only component that talks to the attribute store. It
turns every store outcome into a ``LookupResult`` so that misses, timeouts
and outages all fail closed while staying distinguishable in diagnostics.
"""

import time
from typing import Any, Callable, List, Optional, Protocol, Union
from dataclasses import dataclass

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from shared.errors import AttributeStoreTimeout, ValidationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from .models import DevicePairing, LookupRecord, LookupStatus, Request, SubjectAttributes

SUBJECT = "subject"
DEVICE_PAIRING = "device_pairing"


class AttributeStore(Protocol):
    """Read-only keyed lookups against an external attribute store."""

    def get_subject_attributes(self, subject_id: str, timeout: Optional[float] = None) -> Optional[SubjectAttributes]:
        ...

    def get_device_pairing(self, device_id: str, timeout: Optional[float] = None) -> Optional[DevicePairing]:
        ...


@dataclass(frozen=True)
class LookupResult:
    """Outcome of a resolver lookup."""
    status: LookupStatus
    value: Optional[Union[SubjectAttributes, DevicePairing]] = None

    @property
    def found(self) -> bool:
        return self.status == LookupStatus.FOUND


class AttributeResolver:
    """Resolves subject attributes and device pairings from a store."""

    def __init__(self, store: AttributeStore,
                 circuit_breaker: Optional[CircuitBreaker] = None,
                 metrics: Optional[MetricsCollector] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.store = store
        self.circuit_breaker = circuit_breaker
        self.metrics = metrics
        self.logger = get_logger("abac.resolver")
        self._clock = clock

    def resolve_subject(self, subject_id: str, timeout: Optional[float] = None) -> LookupResult:
        """Look up subject attributes."""
        self._require_id("subject_id", subject_id)
        return self._lookup(SUBJECT, subject_id, self.store.get_subject_attributes, timeout)

    def resolve_device_pairing(self, device_id: str, timeout: Optional[float] = None) -> LookupResult:
        """Look up the MAC address a device is paired with."""
        self._require_id("device_id", device_id)
        return self._lookup(DEVICE_PAIRING, device_id, self.store.get_device_pairing, timeout)

    @staticmethod
    def _require_id(name: str, value: Any):
        if not isinstance(value, str) or not value:
            raise ValidationError(f"{name} must be a non-empty string", details={"field": name})

    def _lookup(self, kind: str, key: str, fetch: Callable[..., Any], timeout: Optional[float]) -> LookupResult:
        if timeout is not None and timeout <= 0:
            return self._finish(kind, key, LookupResult(LookupStatus.TIMEOUT))

        started = self._clock()
        try:
            if self.circuit_breaker is not None:
                value = self.circuit_breaker.call(fetch, key, timeout=timeout)
            else:
                value = fetch(key, timeout=timeout)
        except CircuitBreakerOpenError:
            result = LookupResult(LookupStatus.UNAVAILABLE)
        except (AttributeStoreTimeout, TimeoutError):
            result = LookupResult(LookupStatus.TIMEOUT)
        except Exception as e:
            self.logger.error("Attribute store lookup failed", kind=kind, key=key, error=str(e))
            result = LookupResult(LookupStatus.UNAVAILABLE)
        else:
            if timeout is not None and self._clock() - started > timeout:
                # Late answers are discarded
                result = LookupResult(LookupStatus.TIMEOUT)
            elif value is None:
                result = LookupResult(LookupStatus.NOT_FOUND)
            else:
                result = LookupResult(LookupStatus.FOUND, value)

        return self._finish(kind, key, result)

    def _finish(self, kind: str, key: str, result: LookupResult) -> LookupResult:
        if result.status.is_fault:
            self.logger.warning("Attribute lookup failed closed", kind=kind, key=key, status=result.status.value)
        if self.metrics is not None:
            self.metrics.record_lookup(kind, result.status.value)
        return result


_UNRESOLVED = object()


class ResolvedAttributes:
    """Attributes for one evaluation, resolved lazily and memoized for that call only.

    Predicates read ``subject`` and ``device_pairing``; the first read triggers
    the store lookup, later reads within the same evaluation reuse it. Both
    return ``None`` unless the lookup found a record.
    """

    def __init__(self, request: Request, resolver: AttributeResolver, deadline: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.request = request
        self._resolver = resolver
        self._deadline = deadline
        self._clock = clock
        self._subject: Any = _UNRESOLVED
        self._pairing: Any = _UNRESOLVED
        self.lookups: List[LookupRecord] = []

    def _remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return self._deadline - self._clock()

    @property
    def subject(self) -> Optional[SubjectAttributes]:
        if self._subject is _UNRESOLVED:
            result = self._resolver.resolve_subject(self.request.subject_id, timeout=self._remaining())
            self.lookups.append(LookupRecord(SUBJECT, self.request.subject_id, result.status))
            self._subject = result.value if result.found else None
        return self._subject

    @property
    def device_pairing(self) -> Optional[DevicePairing]:
        if self._pairing is _UNRESOLVED:
            device_id = self.request.object.device_id
            if not device_id:
                self._pairing = None
            else:
                result = self._resolver.resolve_device_pairing(device_id, timeout=self._remaining())
                self.lookups.append(LookupRecord(DEVICE_PAIRING, device_id, result.status))
                self._pairing = result.value if result.found else None
        return self._pairing

    @property
    def had_fault(self) -> bool:
        return any(record.status.is_fault for record in self.lookups)

    @property
    def had_miss(self) -> bool:
        return any(record.status == LookupStatus.NOT_FOUND for record in self.lookups)

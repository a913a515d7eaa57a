"""
In-memory attribute store, used for embedding and tests.
"""

from typing import Any, Dict, Mapping, Optional

from ..models import DevicePairing, SubjectAttributes


class InMemoryAttributeStore:
    """Dictionary-backed attribute store."""

    def __init__(self, subjects: Optional[Mapping[str, SubjectAttributes]] = None,
                 pairings: Optional[Mapping[str, DevicePairing]] = None):
        self._subjects: Dict[str, SubjectAttributes] = dict(subjects or {})
        self._pairings: Dict[str, DevicePairing] = dict(pairings or {})

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "InMemoryAttributeStore":
        """Build a store from ``{"subjects": {id: {...}}, "devices": {id: mac}}``."""
        subjects = {
            subject_id: SubjectAttributes(role=record["role"], assigned_location=record.get("assigned_location"))
            for subject_id, record in (data.get("subjects") or {}).items()
        }
        pairings = {
            device_id: DevicePairing(device_id=device_id, mac_address=mac)
            for device_id, mac in (data.get("devices") or {}).items()
        }
        return cls(subjects, pairings)

    def get_subject_attributes(self, subject_id: str, timeout: Optional[float] = None) -> Optional[SubjectAttributes]:
        return self._subjects.get(subject_id)

    def get_device_pairing(self, device_id: str, timeout: Optional[float] = None) -> Optional[DevicePairing]:
        return self._pairings.get(device_id)

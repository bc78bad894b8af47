"""
Biometric domain models
"""

from typing import List, Optional
from dataclasses import dataclass, field

from ...patient.models.patient import PatientIdentifierType


@dataclass
class Fingerprint:
    """Captured fingerprint template"""
    type: str
    format: str
    template: str


@dataclass
class BiometricSubject:
    """
    Subject held by the biometric engine

    Only subject_id is ever stored locally, as a patient identifier.
    """
    subject_id: Optional[str] = None
    fingerprints: List[Fingerprint] = field(default_factory=list)


@dataclass
class BiometricData:
    """One biometric sample submitted with a registration"""
    subject: Optional[BiometricSubject] = None
    identifier_type: Optional[PatientIdentifierType] = None

    def has_templates(self) -> bool:
        return self.subject is not None and bool(self.subject.fingerprints)

"""
Registration request model
"""

from typing import List, Optional
from dataclasses import dataclass, field

from ...biometrics.models.biometric import BiometricData
from ...patient.models.patient import Location, Patient, Relationship, User


@dataclass
class RegistrationData:
    """
    One registration attempt

    identifier is a caller-supplied identifier value; when blank one is
    generated from the configured identifier source.
    """
    patient: Optional[Patient] = None
    relationships: List[Relationship] = field(default_factory=list)
    identifier: Optional[str] = None
    identifier_location: Optional[Location] = None
    biometrics: List[BiometricData] = field(default_factory=list)
    registerer: Optional[User] = None

"""
Base provider interfaces

Defines the contracts that pluggable matching strategies and external
systems (remote index, biometric engine) must implement.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Any, Optional

from ..domains.biometrics.models.biometric import BiometricSubject
from ..domains.matching.models.matching import PatientAndMatchQuality
from ..domains.patient.models.patient import Patient


class SimilarPatientSearchAlgorithm(ABC):
    """Scores stored patients against a patient profile"""

    @abstractmethod
    async def find_similar_patients(
        self,
        patient: Patient,
        other_data_points: Optional[Dict[str, Any]],
        cutoff: float,
        max_results: int
    ) -> List[PatientAndMatchQuality]:
        """
        Find patients similar to the given one

        Returns:
            At most max_results candidates, every score >= cutoff, ordered by
            descending score
        """
        pass


class PatientNameSearch(ABC):
    """Autocomplete-style name lookup"""

    @abstractmethod
    async def find_similar_given_names(self, search_phrase: str) -> List[str]:
        pass

    @abstractmethod
    async def find_similar_family_names(self, search_phrase: str) -> List[str]:
        pass


class RemoteIndexProvider(ABC):
    """Transport to a remote master patient index"""

    @abstractmethod
    async def find_similar_matches(
        self,
        patient: Patient,
        other_data_points: Optional[Dict[str, Any]],
        cutoff: float,
        max_results: int
    ) -> List[PatientAndMatchQuality]:
        pass

    @abstractmethod
    async def find_exact_matches(
        self,
        patient: Patient,
        other_data_points: Optional[Dict[str, Any]],
        cutoff: float,
        max_results: int
    ) -> List[PatientAndMatchQuality]:
        pass

    @abstractmethod
    async def fetch_remote_patient(self, remote_id: str) -> Patient:
        pass


class BiometricEngine(ABC):
    """Biometric matching engine holding fingerprint templates"""

    @abstractmethod
    async def lookup(self, subject_id: str) -> Optional[BiometricSubject]:
        pass

    @abstractmethod
    async def enroll(self, subject: BiometricSubject) -> BiometricSubject:
        """Enroll a new subject; the returned subject carries its assigned subject_id"""
        pass

    @abstractmethod
    async def update(self, subject: BiometricSubject) -> BiometricSubject:
        pass


def rank_matches(
    matches: List[PatientAndMatchQuality],
    cutoff: float,
    max_results: int
) -> List[PatientAndMatchQuality]:
    """Apply the cutoff, order by descending score and cap the result count"""
    kept = [match for match in matches if match.score >= cutoff]
    kept.sort(key=lambda match: match.score, reverse=True)
    return kept[:max(max_results, 0)]

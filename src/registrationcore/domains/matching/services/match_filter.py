"""
Match reconciliation

Merges local and remote candidate lists and filters out entries that
refer to the same underlying person or that are excluded outright.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from ..models.matching import MatchOrigin, PatientAndMatchQuality

logger = logging.getLogger(__name__)


class MpiPatientFilter(ABC):
    """Exclusion policy applied to a combined candidate list"""

    @abstractmethod
    def filter(self, candidates: List[PatientAndMatchQuality]) -> None:
        """Remove disallowed candidates in place without reordering survivors"""
        pass


class MpiIdentifierPatientFilter(MpiPatientFilter):
    """
    Drops candidates that duplicate an earlier one

    A remote candidate is a duplicate when a local candidate already carries
    its remote person id as an identifier of the MPI identifier type. A
    remote person id is the candidate's own MPI identifier, or its uuid
    when it has none.
    """

    def __init__(self, identifier_type_uuid: Optional[str] = None, excluded_uuids: Optional[Iterable[str]] = None):
        self.identifier_type_uuid = identifier_type_uuid
        self.excluded_uuids = set(excluded_uuids or [])

    def remote_person_id(self, candidate: PatientAndMatchQuality) -> str:
        if self.identifier_type_uuid:
            identifier = candidate.patient.get_patient_identifier(self.identifier_type_uuid)
            if identifier is not None:
                return identifier.identifier
        return candidate.patient.uuid

    def filter(self, candidates: List[PatientAndMatchQuality]) -> None:
        local_mpi_ids = set()
        if self.identifier_type_uuid:
            for candidate in candidates:
                if candidate.origin != MatchOrigin.LOCAL:
                    continue
                for identifier in candidate.patient.identifiers:
                    if identifier.identifier_type.uuid == self.identifier_type_uuid:
                        local_mpi_ids.add(identifier.identifier)

        seen_uuids = set()
        kept = []
        for candidate in candidates:
            uuid = candidate.patient.uuid
            if uuid in self.excluded_uuids or uuid in seen_uuids:
                continue
            if candidate.origin == MatchOrigin.REMOTE and self.remote_person_id(candidate) in local_mpi_ids:
                logger.debug(f"Dropping remote candidate {uuid}, already present locally")
                continue
            seen_uuids.add(uuid)
            kept.append(candidate)

        removed = len(candidates) - len(kept)
        if removed:
            logger.debug(f"Filtered {removed} of {len(candidates)} candidates")
        candidates[:] = kept


class MatchReconciler:
    """Combines local and remote candidates"""

    def __init__(self, patient_filter: Optional[MpiPatientFilter] = None):
        self.patient_filter = patient_filter or MpiIdentifierPatientFilter()

    def merge(
        self,
        local: List[PatientAndMatchQuality],
        remote: List[PatientAndMatchQuality]
    ) -> List[PatientAndMatchQuality]:
        """Local candidates first, then remote, filtered once"""
        merged = list(local) + list(remote)
        self.patient_filter.filter(merged)
        return merged

    def filter(self, candidates: List[PatientAndMatchQuality]) -> None:
        self.patient_filter.filter(candidates)

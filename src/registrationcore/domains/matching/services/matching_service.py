"""
Similar patient search

Resolves the fast, precise and name-search strategies from the property
store on every call and, when the remote index is enabled, merges its
candidates with the local ones.
"""

import logging
from typing import Dict, List, Any, Optional

from ....core.config import MatchingConfig, get_matching_config
from ....core.constants import (
    BASIC_EXACT_PATIENT_SEARCH_ALGORITHM,
    BASIC_PATIENT_NAME_SEARCH,
    BASIC_SIMILAR_PATIENT_SEARCH_ALGORITHM,
    GP_FAST_SIMILAR_PATIENT_SEARCH_ALGORITHM,
    GP_PATIENT_NAME_SEARCH,
    GP_PRECISE_SIMILAR_PATIENT_SEARCH_ALGORITHM,
)
from ....core.metrics import similar_patient_matches, similar_patient_searches_total
from ....core.properties import PropertyStore
from ....providers.base_provider import PatientNameSearch, SimilarPatientSearchAlgorithm
from ....providers.registry import AlgorithmRegistry
from ...patient.models.patient import Patient
from ..models.matching import PatientAndMatchQuality
from .match_filter import MatchReconciler
from .remote_index_service import RemoteIndexService

logger = logging.getLogger(__name__)


class MatchingService:
    """Duplicate detection entry point"""

    def __init__(
        self,
        property_store: PropertyStore,
        registry: AlgorithmRegistry,
        remote_index: Optional[RemoteIndexService] = None,
        reconciler: Optional[MatchReconciler] = None,
        config: Optional[MatchingConfig] = None
    ):
        self.property_store = property_store
        self.registry = registry
        self.remote_index = remote_index
        self.reconciler = reconciler or MatchReconciler()
        self.config = config or get_matching_config()

    async def _binding(self, property_name: str, default: str) -> str:
        name = await self.property_store.get_property(property_name)
        if name is None or not name.strip():
            return default
        return name.strip()

    async def get_fast_similar_patient_search_algorithm(self) -> SimilarPatientSearchAlgorithm:
        name = await self._binding(GP_FAST_SIMILAR_PATIENT_SEARCH_ALGORITHM, BASIC_SIMILAR_PATIENT_SEARCH_ALGORITHM)
        return self.registry.resolve(name, SimilarPatientSearchAlgorithm, GP_FAST_SIMILAR_PATIENT_SEARCH_ALGORITHM)

    async def get_precise_similar_patient_search_algorithm(self) -> SimilarPatientSearchAlgorithm:
        name = await self._binding(GP_PRECISE_SIMILAR_PATIENT_SEARCH_ALGORITHM, BASIC_EXACT_PATIENT_SEARCH_ALGORITHM)
        return self.registry.resolve(name, SimilarPatientSearchAlgorithm, GP_PRECISE_SIMILAR_PATIENT_SEARCH_ALGORITHM)

    async def get_patient_name_search(self) -> PatientNameSearch:
        name = await self._binding(GP_PATIENT_NAME_SEARCH, BASIC_PATIENT_NAME_SEARCH)
        return self.registry.resolve(name, PatientNameSearch, GP_PATIENT_NAME_SEARCH)

    @property
    def remote_enabled(self) -> bool:
        return self.remote_index is not None and self.remote_index.enabled

    async def find_fast_similar_patients(
        self,
        patient: Patient,
        other_data_points: Optional[Dict[str, Any]] = None,
        cutoff: Optional[float] = None,
        max_results: Optional[int] = None
    ) -> List[PatientAndMatchQuality]:
        """
        Approximate duplicate search

        Local candidates come first, then remote ones when the remote index
        is enabled. Remote failures propagate as RemoteIndexError.
        """
        cutoff, max_results = self._limits(cutoff, max_results)
        algorithm = await self.get_fast_similar_patient_search_algorithm()
        local = await algorithm.find_similar_patients(patient, other_data_points, cutoff, max_results)

        matches = local
        if self.remote_enabled:
            remote = await self.remote_index.find_similar_matches(patient, other_data_points, cutoff, max_results)
            matches = self.reconciler.merge(local, remote)

        self._record('fast', matches)
        return matches

    async def find_precise_similar_patients(
        self,
        patient: Patient,
        other_data_points: Optional[Dict[str, Any]] = None,
        cutoff: Optional[float] = None,
        max_results: Optional[int] = None
    ) -> List[PatientAndMatchQuality]:
        """High-confidence duplicate search, same merge rules as the fast one"""
        cutoff, max_results = self._limits(cutoff, max_results)
        algorithm = await self.get_precise_similar_patient_search_algorithm()
        local = await algorithm.find_similar_patients(patient, other_data_points, cutoff, max_results)

        matches = local
        if self.remote_enabled:
            remote = await self.remote_index.find_exact_matches(patient, other_data_points, cutoff, max_results)
            matches = self.reconciler.merge(local, remote)

        self._record('precise', matches)
        return matches

    async def find_similar_given_names(self, search_phrase: str) -> List[str]:
        name_search = await self.get_patient_name_search()
        return await name_search.find_similar_given_names(search_phrase)

    async def find_similar_family_names(self, search_phrase: str) -> List[str]:
        name_search = await self.get_patient_name_search()
        return await name_search.find_similar_family_names(search_phrase)

    def _limits(self, cutoff: Optional[float], max_results: Optional[int]):
        if cutoff is None:
            cutoff = self.config.default_cutoff
        if max_results is None:
            max_results = self.config.default_max_results
        return cutoff, max_results

    def _record(self, mode: str, matches: List[PatientAndMatchQuality]) -> None:
        similar_patient_searches_total.labels(mode=mode).inc()
        similar_patient_matches.labels(mode=mode).observe(len(matches))
        logger.debug(f"{mode} similar patient search returned {len(matches)} candidates")

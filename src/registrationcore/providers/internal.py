"""
Internal matching strategies

Local similar patient search over the patient store:
1. Blocking on stored match keys (Soundex or normalized names)
2. Fuzzy string matching on names and extra data points
3. Weighted scoring normalized to the 0-1 range
"""

import logging
from typing import Dict, List, Any, Optional, Tuple

from fuzzywuzzy import fuzz

from .base_provider import PatientNameSearch, SimilarPatientSearchAlgorithm, rank_matches
from ..core.config import MatchingConfig, get_matching_config
from ..core.phonetics import normalize_name, soundex
from ..domains.matching.models.matching import MatchOrigin, PatientAndMatchQuality
from ..domains.patient.models.patient import Patient
from ..domains.patient.repositories.patient_repository import PatientStore

logger = logging.getLogger(__name__)


def _field_value(patient: Patient, field: str) -> str:
    if field == 'given_name':
        return normalize_name(patient.given_name)
    if field == 'family_name':
        return normalize_name(patient.family_name)
    if field == 'birthdate':
        return patient.birthdate.isoformat() if patient.birthdate else ''
    if field == 'gender':
        return (patient.gender or '').strip().upper()
    value = patient.attributes.get(field)
    return str(value).strip().lower() if value not in (None, '') else ''


class BasicSimilarPatientSearchAlgorithm(SimilarPatientSearchAlgorithm):
    """
    Fast, approximate search

    Candidates are blocked on the Soundex code of the family name, then
    scored with weighted fuzzy similarity.
    """

    def __init__(self, store: PatientStore, config: Optional[MatchingConfig] = None):
        self.store = store
        self.config = config or get_matching_config()

    async def find_similar_patients(
        self,
        patient: Patient,
        other_data_points: Optional[Dict[str, Any]],
        cutoff: float,
        max_results: int
    ) -> List[PatientAndMatchQuality]:
        if patient.family_name:
            match_keys = {'family_name_soundex': soundex(patient.family_name)}
        elif patient.given_name:
            match_keys = {'given_name_soundex': soundex(patient.given_name)}
        else:
            return []

        candidates = await self.store.find_candidates(match_keys, self.config.candidate_limit)

        matches = []
        for candidate in candidates:
            if candidate.uuid == patient.uuid:
                continue
            score, matched_fields = self._calculate_match_score(patient, other_data_points, candidate)
            matches.append(PatientAndMatchQuality(
                patient=candidate,
                score=score,
                matched_fields=matched_fields,
                origin=MatchOrigin.LOCAL
            ))

        ranked = rank_matches(matches, cutoff, max_results)
        logger.debug(f"Fast search scored {len(candidates)} candidates, {len(ranked)} above {cutoff}")
        return ranked

    def _calculate_match_score(
        self,
        patient: Patient,
        other_data_points: Optional[Dict[str, Any]],
        candidate: Patient
    ) -> Tuple[float, List[str]]:
        """Calculate weighted similarity score between patient and candidate"""
        total_score = 0.0
        total_weight = 0.0
        matched_fields = []

        for field, weight in self.config.field_weights.items():
            patient_value = _field_value(patient, field)
            if not patient_value:
                continue
            total_weight += weight

            candidate_value = _field_value(candidate, field)
            if not candidate_value:
                continue

            if field in ['given_name', 'family_name']:
                similarity = fuzz.ratio(patient_value, candidate_value)
                if similarity <= 70:  # Only count reasonably good matches
                    continue
            elif field == 'birthdate':
                if patient_value == candidate_value:
                    similarity = 100.0
                elif patient_value[:4] == candidate_value[:4]:
                    similarity = 50.0
                else:
                    continue
            else:
                if patient_value != candidate_value:
                    continue
                similarity = 100.0

            total_score += similarity * weight
            matched_fields.append(field)

        for key, value in (other_data_points or {}).items():
            if value in (None, ''):
                continue
            weight = self.config.other_data_point_weight
            total_weight += weight

            candidate_value = _field_value(candidate, key)
            if not candidate_value:
                continue

            similarity = fuzz.partial_ratio(str(value).strip().lower(), candidate_value)
            if similarity > 70:
                total_score += similarity * weight
                matched_fields.append(key)

        if total_weight == 0:
            return 0.0, matched_fields

        return min(total_score / total_weight / 100.0, 1.0), matched_fields


class BasicExactPatientSearchAlgorithm(SimilarPatientSearchAlgorithm):
    """
    Precise search

    Candidates must share the normalized given and family name; the score
    is the weighted share of fields that are exactly equal.
    """

    def __init__(self, store: PatientStore, config: Optional[MatchingConfig] = None):
        self.store = store
        self.config = config or get_matching_config()

    async def find_similar_patients(
        self,
        patient: Patient,
        other_data_points: Optional[Dict[str, Any]],
        cutoff: float,
        max_results: int
    ) -> List[PatientAndMatchQuality]:
        given_name = normalize_name(patient.given_name)
        family_name = normalize_name(patient.family_name)
        if not given_name or not family_name:
            return []

        candidates = await self.store.find_candidates(
            {'given_name': given_name, 'family_name': family_name},
            self.config.candidate_limit
        )

        matches = []
        for candidate in candidates:
            if candidate.uuid == patient.uuid:
                continue
            score, matched_fields = self._calculate_exact_score(patient, other_data_points, candidate)
            matches.append(PatientAndMatchQuality(
                patient=candidate,
                score=score,
                matched_fields=matched_fields,
                origin=MatchOrigin.LOCAL
            ))

        return rank_matches(matches, cutoff, max_results)

    def _calculate_exact_score(
        self,
        patient: Patient,
        other_data_points: Optional[Dict[str, Any]],
        candidate: Patient
    ) -> Tuple[float, List[str]]:
        matched_weight = 0.0
        total_weight = 0.0
        matched_fields = []

        fields = [(field, weight, _field_value(patient, field)) for field, weight in self.config.field_weights.items()]
        fields += [
            (key, self.config.other_data_point_weight, str(value).strip().lower())
            for key, value in (other_data_points or {}).items()
            if value not in (None, '')
        ]

        for field, weight, patient_value in fields:
            if not patient_value:
                continue
            total_weight += weight
            if patient_value == _field_value(candidate, field):
                matched_weight += weight
                matched_fields.append(field)

        if total_weight == 0:
            return 0.0, matched_fields
        return matched_weight / total_weight, matched_fields


class BasicPatientNameSearch(PatientNameSearch):
    """Stored names starting with the search phrase"""

    def __init__(self, store: PatientStore, config: Optional[MatchingConfig] = None):
        self.store = store
        self.config = config or get_matching_config()

    async def find_similar_given_names(self, search_phrase: str) -> List[str]:
        return await self._find_names('given_name', search_phrase)

    async def find_similar_family_names(self, search_phrase: str) -> List[str]:
        return await self._find_names('family_name', search_phrase)

    async def _find_names(self, name_field: str, search_phrase: str) -> List[str]:
        if not search_phrase or not search_phrase.strip():
            return []
        return await self.store.find_names(name_field, search_phrase.strip(), self.config.name_search_limit)

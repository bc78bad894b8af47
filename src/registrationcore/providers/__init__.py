"""
Strategy and collaborator providers

Available strategies:
- BasicSimilarPatientSearchAlgorithm: fast Soundex-blocked fuzzy search
- BasicExactPatientSearchAlgorithm: precise exact-name search
- BasicPatientNameSearch: name prefix lookup
- HttpRemoteIndexProvider: remote master patient index over HTTP

Matching strategies are looked up by binding name through an
AlgorithmRegistry.
"""

from typing import Optional

from .base_provider import (
    BiometricEngine,
    PatientNameSearch,
    RemoteIndexProvider,
    SimilarPatientSearchAlgorithm,
    rank_matches,
)
from .internal import BasicExactPatientSearchAlgorithm, BasicPatientNameSearch, BasicSimilarPatientSearchAlgorithm
from .registry import AlgorithmRegistry
from .remote_provider import HttpRemoteIndexProvider
from ..core.config import MatchingConfig
from ..core.constants import (
    BASIC_EXACT_PATIENT_SEARCH_ALGORITHM,
    BASIC_PATIENT_NAME_SEARCH,
    BASIC_SIMILAR_PATIENT_SEARCH_ALGORITHM,
)

__all__ = [
    # Interfaces
    'SimilarPatientSearchAlgorithm',
    'PatientNameSearch',
    'RemoteIndexProvider',
    'BiometricEngine',
    'rank_matches',

    # Implementations
    'BasicSimilarPatientSearchAlgorithm',
    'BasicExactPatientSearchAlgorithm',
    'BasicPatientNameSearch',
    'HttpRemoteIndexProvider',

    'AlgorithmRegistry',
    'build_default_registry'
]


def build_default_registry(store, config: Optional[MatchingConfig] = None) -> AlgorithmRegistry:
    """
    Create a registry holding the built-in strategies

    Args:
        store: PatientStore the strategies search
        config: Matching settings shared by the strategies

    Returns:
        Registry with the three default bindings
    """
    registry = AlgorithmRegistry()
    registry.register(BASIC_SIMILAR_PATIENT_SEARCH_ALGORITHM, BasicSimilarPatientSearchAlgorithm(store, config))
    registry.register(BASIC_EXACT_PATIENT_SEARCH_ALGORITHM, BasicExactPatientSearchAlgorithm(store, config))
    registry.register(BASIC_PATIENT_NAME_SEARCH, BasicPatientNameSearch(store, config))
    return registry

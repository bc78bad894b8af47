"""
Remote index bridge

Gates every remote call on the MPI_ENABLED setting and imports remote
records into the local patient store.
"""

import logging
from typing import Dict, List, Any, Optional
from uuid import uuid4

from ....core.config import MPIProviderConfig, get_mpi_provider_config
from ....core.exceptions import IllegalStateError
from ....core.metrics import remote_index_requests_total
from ....providers.base_provider import RemoteIndexProvider
from ...patient.models.patient import Patient, PatientIdentifier, PatientIdentifierType
from ...patient.repositories.patient_repository import PatientStore
from ..models.matching import PatientAndMatchQuality

logger = logging.getLogger(__name__)


class RemoteIndexService:
    """Optional remote master patient index integration"""

    def __init__(
        self,
        provider: Optional[RemoteIndexProvider],
        store: PatientStore,
        config: Optional[MPIProviderConfig] = None
    ):
        self.provider = provider
        self.store = store
        self.config = config or get_mpi_provider_config()

    @property
    def enabled(self) -> bool:
        return bool(self.config.enabled) and self.provider is not None

    def _require_enabled(self, operation: str) -> None:
        if not self.enabled:
            raise IllegalStateError(f"Cannot {operation}: remote index integration is disabled")

    async def find_similar_matches(
        self,
        patient: Patient,
        other_data_points: Optional[Dict[str, Any]],
        cutoff: float,
        max_results: int
    ) -> List[PatientAndMatchQuality]:
        self._require_enabled("query the remote index")
        return await self.provider.find_similar_matches(patient, other_data_points, cutoff, max_results)

    async def find_exact_matches(
        self,
        patient: Patient,
        other_data_points: Optional[Dict[str, Any]],
        cutoff: float,
        max_results: int
    ) -> List[PatientAndMatchQuality]:
        self._require_enabled("query the remote index")
        return await self.provider.find_exact_matches(patient, other_data_points, cutoff, max_results)

    async def import_patient(self, remote_id: str) -> Patient:
        """
        Fetch a remote record and persist it locally as a new patient

        The remote person id is kept on the local record as an identifier of
        the MPI identifier type, when one is configured.

        Raises:
            IllegalStateError: remote index integration is disabled
            RemoteIndexError: the remote record cannot be fetched
        """
        self._require_enabled("import a patient")

        try:
            patient = await self.provider.fetch_remote_patient(remote_id)
            patient.uuid = str(uuid4())
            patient.person_id = None
            for identifier in patient.identifiers:
                identifier.patient_uuid = patient.uuid

            type_uuid = self.config.identifier_type_uuid
            if type_uuid and patient.get_patient_identifier(type_uuid) is None:
                patient.add_identifier(PatientIdentifier(
                    identifier=remote_id,
                    identifier_type=PatientIdentifierType(name="MPI", uuid=type_uuid),
                    preferred=False
                ))

            saved = await self.store.save_patient(patient)
        except Exception as e:
            remote_index_requests_total.labels(operation='import', status='error').inc()
            logger.error(f"Import of remote patient {remote_id} failed: {e}")
            raise

        remote_index_requests_total.labels(operation='import', status='success').inc()
        logger.info(f"Imported remote patient {remote_id} as {saved.uuid}")
        return saved

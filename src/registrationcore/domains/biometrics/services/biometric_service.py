"""
Biometric enrollment

Enrolls or updates a subject in the biometric engine and makes sure the
patient carries an identifier pointing at that subject.
"""

import logging
from typing import Optional

from ....core.exceptions import ConfigurationError, IllegalStateError
from ....core.metrics import biometric_operations_total
from ....providers.base_provider import BiometricEngine
from ...patient.models.patient import Patient, PatientIdentifier
from ...patient.repositories.patient_repository import PatientStore
from ..models.biometric import BiometricData

logger = logging.getLogger(__name__)


class BiometricService:
    """Per-sample enrollment against an optional biometric engine"""

    def __init__(self, store: PatientStore, engine: Optional[BiometricEngine] = None):
        self.store = store
        self.engine = engine

    def get_biometric_engine(self) -> Optional[BiometricEngine]:
        return self.engine

    async def save_biometrics_for_patient(self, patient: Patient, biometric_data: BiometricData) -> BiometricData:
        """
        Store one biometric sample for a patient

        A sample without fingerprints is a no-op. Otherwise the subject is
        enrolled (no subject id, or unknown to the engine) or updated, and an
        identifier holding the subject id is added to the patient if missing.

        Raises:
            IllegalStateError: no biometric engine is configured
            ConfigurationError: the sample has no identifier type
        """
        if not biometric_data.has_templates():
            logger.debug("There are no biometrics to save for patient")
            biometric_operations_total.labels(operation='skip').inc()
            return biometric_data

        subject = biometric_data.subject
        logger.debug(f"Saving biometrics for patient. Found {len(subject.fingerprints)} fingerprints.")

        engine = self.get_biometric_engine()
        if engine is None:
            raise IllegalStateError("Unable to save biometrics, as no biometrics engine is enabled")

        identifier_type = biometric_data.identifier_type
        if identifier_type is None:
            raise ConfigurationError("Invalid biometric configuration. No patient identifier type specified")

        existing = await engine.lookup(subject.subject_id) if subject.subject_id else None
        if existing is None:
            subject = await engine.enroll(subject)
            biometric_operations_total.labels(operation='enroll').inc()
            logger.debug(f"Enrolled new biometric subject: {subject.subject_id}")
        else:
            subject = await engine.update(subject)
            biometric_operations_total.labels(operation='update').inc()
            logger.debug(f"Updated existing biometric subject: {subject.subject_id}")

        already_linked = any(
            identifier.identifier == subject.subject_id
            for identifier in patient.get_patient_identifiers(identifier_type)
        )
        if already_linked:
            logger.debug("Identifier already exists for patient")
        else:
            identifier = PatientIdentifier(
                identifier=subject.subject_id,
                identifier_type=identifier_type,
                preferred=False
            )
            patient.add_identifier(identifier)
            await self.store.save_patient_identifier(identifier)
            logger.debug(f"New patient identifier saved for patient {patient.uuid}")

        return biometric_data

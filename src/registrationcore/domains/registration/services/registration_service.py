"""
Registration transaction

Allocates the patient identifier, persists the patient and its
relationships, enrolls biometrics and announces the registration.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Dict, List, Any, Optional

from ....core.config import RegistrationConfig, get_registration_config
from ....core.constants import (
    DATE_FORMAT_STRING,
    KEY_DATE_REGISTERED,
    KEY_PATIENT_UUID,
    KEY_REGISTERER_ID,
    KEY_REGISTERER_UUID,
    KEY_RELATIONSHIP_UUIDS,
    KEY_WAS_A_PERSON,
)
from ....core.events import EventPublisher
from ....core.exceptions import BiometricSubsystemError, ConfigurationError, ValidationError
from ....core.metrics import registration_duration, registrations_total
from ...biometrics.services.biometric_service import BiometricService
from ...identifier.services.identifier_service import IdentifierAllocator
from ...identifier.services.location_service import LocationDirectory, LocationResolver
from ...patient.models.patient import Location, Patient, PatientIdentifier, Relationship, User
from ...patient.repositories.patient_repository import PatientStore
from ..models.registration import RegistrationData

logger = logging.getLogger(__name__)


def format_registration_date(value: datetime) -> str:
    """Render as yyyy-MM-dd HH:mm:ss:SSS Z"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    pattern = DATE_FORMAT_STRING.format(millis=value.microsecond // 1000)
    return value.strftime(pattern)


class RegistrationService:
    """Registers new patients"""

    def __init__(
        self,
        store: PatientStore,
        allocator: IdentifierAllocator,
        location_directory: LocationDirectory,
        biometric_service: BiometricService,
        event_publisher: EventPublisher,
        location_resolver: Optional[LocationResolver] = None,
        config: Optional[RegistrationConfig] = None
    ):
        self.store = store
        self.allocator = allocator
        self.location_directory = location_directory
        self.biometric_service = biometric_service
        self.event_publisher = event_publisher
        self.config = config or get_registration_config()
        self.location_resolver = location_resolver or LocationResolver(self.config)

    async def register_patient_with(
        self,
        patient: Patient,
        relationships: Optional[List[Relationship]] = None,
        identifier: Optional[str] = None,
        identifier_location: Optional[Location] = None
    ) -> Patient:
        data = RegistrationData(
            patient=patient,
            relationships=list(relationships or []),
            identifier=identifier,
            identifier_location=identifier_location
        )
        return await self.register_patient(data)

    async def register_patient(self, data: RegistrationData) -> Patient:
        """
        Register a new patient

        Steps run in a fixed order; nothing is written before the identifier
        is allocated and validated. Relationships abort on the first failure.
        Biometric failures happen after the patient and relationships are
        saved and are not rolled back.

        Raises:
            ValidationError: missing patient, invalid identifier or relationship
            ConfigurationError: identifier source or location cannot be resolved
            BiometricSubsystemError: biometric enrollment failed
        """
        logger.info("Registering new patient..")
        start_time = time.time()
        try:
            patient = await self._register(data)
        except BiometricSubsystemError:
            registrations_total.labels(status='biometrics_failed').inc()
            raise
        except Exception:
            registrations_total.labels(status='failed').inc()
            raise

        registrations_total.labels(status='success').inc()
        registration_duration.observe(time.time() - start_time)
        return patient

    async def _register(self, data: RegistrationData) -> Patient:
        patient = data.patient
        if patient is None:
            raise ValidationError("Patient cannot be null")

        source = await self.allocator.resolve_source()
        identifier_location = await self._resolve_identifier_location(data.identifier_location)

        identifier_value = data.identifier
        if identifier_value is None or not identifier_value.strip():
            identifier_value = await self.allocator.generate(source)
        else:
            self.allocator.validate(identifier_value, source.identifier_type)

        patient.add_identifier(PatientIdentifier(
            identifier=identifier_value,
            identifier_type=source.identifier_type,
            location=identifier_location,
            preferred=True
        ))

        was_a_person = patient.person_id is not None
        if patient.creator is None and data.registerer is not None:
            patient.creator = data.registerer

        patient = await self.store.save_patient(patient)
        logger.info(f"Saved patient {patient.uuid} with identifier {identifier_value}")

        relationship_uuids = []
        for relationship in data.relationships:
            if relationship.person_a is None and relationship.person_b is None:
                raise ValidationError("One side of a relationship must be specified")
            if relationship.person_a is None:
                relationship.person_a = patient
            elif relationship.person_b is None:
                relationship.person_b = patient
            else:
                raise ValidationError("Only one side of a relationship should be specified")
            await self.store.save_relationship(relationship)
            relationship_uuids.append(relationship.uuid)

        try:
            for biometric_data in data.biometrics:
                await self.biometric_service.save_biometrics_for_patient(patient, biometric_data)
        except Exception as e:
            logger.error(f"Biometric enrollment failed for patient {patient.uuid}: {e}")
            raise BiometricSubsystemError("Error contacting the biometrics server") from e

        await self.event_publisher.publish(
            self.config.event_topic,
            self._event_message(patient, data.registerer, was_a_person, relationship_uuids)
        )
        return patient

    async def _resolve_identifier_location(self, location: Optional[Location]) -> Location:
        if location is None:
            location = await self.location_directory.get_default_location()
            if location is None:
                raise ConfigurationError("Failed to resolve location to associate to patient identifiers")

        # Prefer an assignment location further up the chain
        authority = self.location_resolver.find_assignment_authority(location)
        return authority if authority is not None else location

    def _event_message(
        self,
        patient: Patient,
        registerer: Optional[User],
        was_a_person: bool,
        relationship_uuids: List[str]
    ) -> Dict[str, Any]:
        creator = patient.creator or registerer
        date_created = patient.date_created or datetime.now(timezone.utc)

        message = {
            KEY_PATIENT_UUID: patient.uuid,
            KEY_REGISTERER_UUID: creator.uuid if creator else None,
            KEY_REGISTERER_ID: creator.user_id if creator else None,
            KEY_DATE_REGISTERED: format_registration_date(date_created),
            KEY_WAS_A_PERSON: was_a_person
        }
        if relationship_uuids:
            message[KEY_RELATIONSHIP_UUIDS] = relationship_uuids
        return message

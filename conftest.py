"""
Shared fixtures: in-memory collaborators for the registration core
"""

from datetime import date
from typing import Dict, List, Any, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from registrationcore.core.config import DatabaseConfig, MatchingConfig, MPIProviderConfig, RegistrationConfig
from registrationcore.core.constants import GP_IDENTIFIER_SOURCE_ID
from registrationcore.core.database import COLLECTION_INDEXES, DatabaseManager
from registrationcore.core.events import EventPublisher
from registrationcore.core.properties import MemoryPropertyStore
from registrationcore.domains.biometrics.models.biometric import BiometricSubject
from registrationcore.domains.identifier.models.identifier_source import IdentifierSource
from registrationcore.domains.identifier.repositories.identifier_source_repository import IdentifierSourceProvider
from registrationcore.domains.identifier.services.identifier_service import IdentifierAllocator, IdentifierSourceCache
from registrationcore.domains.identifier.services.location_service import LocationDirectory
from registrationcore.domains.patient.models.patient import (
    Location,
    Patient,
    PatientIdentifier,
    PatientIdentifierType,
    PersonName,
    Relationship,
)
from registrationcore.domains.patient.repositories.patient_repository import PatientStore, build_match_keys
from registrationcore.providers.base_provider import BiometricEngine


class InMemoryPatientStore(PatientStore):
    """Patient store keeping everything in dictionaries and recording writes"""

    def __init__(self):
        self.patients: Dict[str, Patient] = {}
        self.identifiers: List[PatientIdentifier] = []
        self.relationships: List[Relationship] = []
        self.writes: List[str] = []
        self._next_id = 1

    async def save_patient(self, patient: Patient) -> Patient:
        if patient.person_id is None:
            patient.person_id = self._next_id
            self._next_id += 1
        self.patients[patient.uuid] = patient
        self.writes.append("patient")
        return patient

    async def save_patient_identifier(self, identifier: PatientIdentifier) -> None:
        self.identifiers.append(identifier)
        self.writes.append("identifier")

    async def save_relationship(self, relationship: Relationship) -> Relationship:
        self.relationships.append(relationship)
        self.writes.append("relationship")
        return relationship

    async def get_patient_by_uuid(self, uuid: str) -> Optional[Patient]:
        return self.patients.get(uuid)

    async def find_candidates(self, match_keys: Dict[str, Any], limit: int) -> List[Patient]:
        found = []
        for patient in self.patients.values():
            keys = build_match_keys(patient)
            if all(keys.get(key) == value for key, value in match_keys.items()):
                found.append(patient)
        return found[:limit]

    async def find_names(self, name_field: str, phrase: str, limit: int) -> List[str]:
        prefix = phrase.lower()
        names = set()
        for patient in self.patients.values():
            for name in patient.names:
                value = getattr(name, name_field)
                if value and value.lower().startswith(prefix):
                    names.add(value)
        return sorted(names, key=str.lower)[:limit]


class StubIdentifierSourceProvider(IdentifierSourceProvider):
    """Sequential identifier generator over a fixed set of sources"""

    def __init__(self, sources: List[IdentifierSource]):
        self.sources = {source.source_id: source for source in sources}
        self.lookups = 0
        self.sequence = 0

    async def get_identifier_source(self, source_id: int) -> Optional[IdentifierSource]:
        self.lookups += 1
        return self.sources.get(source_id)

    async def generate_identifier(self, source: IdentifierSource, comment: Optional[str] = None) -> str:
        self.sequence += 1
        return source.format_sequence(self.sequence)


class StaticLocationDirectory(LocationDirectory):

    def __init__(self, default_location: Optional[Location] = None):
        self.default_location = default_location

    async def get_default_location(self) -> Optional[Location]:
        return self.default_location


class RecordingEventPublisher(EventPublisher):

    def __init__(self):
        self.events = []

    async def publish(self, topic: str, message: Dict[str, Any]) -> bool:
        self.events.append((topic, message))
        return True


class StubBiometricEngine(BiometricEngine):
    """Engine that knows a fixed set of subject ids and assigns new ones on enroll"""

    def __init__(self, known_subject_ids=()):
        self.known = set(known_subject_ids)
        self.calls = []

    async def lookup(self, subject_id: str) -> Optional[BiometricSubject]:
        self.calls.append(("lookup", subject_id))
        if subject_id in self.known:
            return BiometricSubject(subject_id=subject_id)
        return None

    async def enroll(self, subject: BiometricSubject) -> BiometricSubject:
        self.calls.append(("enroll", subject.subject_id))
        enrolled = BiometricSubject(subject_id=f"subject-{len(self.known) + 1}", fingerprints=subject.fingerprints)
        self.known.add(enrolled.subject_id)
        return enrolled

    async def update(self, subject: BiometricSubject) -> BiometricSubject:
        self.calls.append(("update", subject.subject_id))
        return subject


def make_patient(given_name, family_name, birthdate=None, gender=None, **attributes) -> Patient:
    return Patient(
        names=[PersonName(given_name=given_name, family_name=family_name)],
        gender=gender,
        birthdate=birthdate,
        attributes=attributes
    )


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def patient_factory():
    return make_patient


@pytest.fixture
def patient_store():
    return InMemoryPatientStore()


@pytest.fixture
def matching_config():
    return MatchingConfig(default_cutoff=0.5, default_max_results=10, candidate_limit=100, name_search_limit=10)


@pytest.fixture
def registration_config():
    return RegistrationConfig()


@pytest.fixture
def mpi_config():
    return MPIProviderConfig(enabled=False, endpoint=None, api_key=None, identifier_type_uuid="mpi-type")


@pytest.fixture
def openmrs_id_type():
    return PatientIdentifierType(name="OpenMRS ID", uuid="openmrs-id-type", format=r"[0-9A-Z]+-[0-9]", validator="luhn")


@pytest.fixture
def plain_id_type():
    return PatientIdentifierType(name="Old Identification Number", uuid="old-id-type", format=r"PT[0-9]{4}")


@pytest.fixture
def identifier_source(plain_id_type):
    return IdentifierSource(source_id=1, name="Patient numbers", identifier_type=plain_id_type, prefix="PT", min_length=4)


@pytest.fixture
def source_provider(identifier_source):
    return StubIdentifierSourceProvider([identifier_source])


@pytest.fixture
def property_store():
    return MemoryPropertyStore({GP_IDENTIFIER_SOURCE_ID: "1"})


@pytest.fixture
def allocator(property_store, source_provider):
    return IdentifierAllocator(property_store, source_provider, cache=IdentifierSourceCache())


@pytest.fixture
def location_tree():
    """hospital (tagged) > ward > bed"""
    hospital = Location(name="Hospital", tags={RegistrationConfig().assignment_location_tag})
    ward = Location(name="Ward", parent=hospital)
    bed = Location(name="Bed", parent=ward)
    return {"hospital": hospital, "ward": ward, "bed": bed}


@pytest.fixture
def location_directory(location_tree):
    return StaticLocationDirectory(location_tree["ward"])


@pytest.fixture
def event_publisher():
    return RecordingEventPublisher()


@pytest.fixture
def biometric_engine():
    return StubBiometricEngine(known_subject_ids={"known-subject"})


@pytest.fixture
def john_smith():
    return make_patient("John", "Smith", birthdate=date(1980, 1, 1), gender="M")


def fake_collection():
    """Motor collection double; awaited calls are AsyncMocks"""
    collection = MagicMock()
    collection.find_one = AsyncMock(return_value=None)
    collection.update_one = AsyncMock(return_value=MagicMock(modified_count=1, upserted_id=None))
    collection.find_one_and_update = AsyncMock(return_value=None)
    collection.distinct = AsyncMock(return_value=[])
    collection.insert_one = AsyncMock()

    cursor = MagicMock()
    cursor.limit.return_value = cursor
    cursor.sort.return_value = cursor
    cursor.to_list = AsyncMock(return_value=[])
    collection.find.return_value = cursor
    return collection


@pytest.fixture
def mongo():
    """DatabaseManager whose logical collections are doubles, as after initialize()"""
    manager = DatabaseManager(DatabaseConfig())
    manager._collections = {name: fake_collection() for name in COLLECTION_INDEXES}
    manager._initialized = True
    return manager

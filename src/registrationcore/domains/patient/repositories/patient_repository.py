"""
Patient repository - handles data persistence
"""

from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
import logging
import re

from pymongo import ReturnDocument

from ..models.patient import Patient, PatientIdentifier, Relationship
from ....core.database import BaseRepository, DatabaseManager
from ....core.phonetics import normalize_name, soundex


logger = logging.getLogger(__name__)


class PatientStore(ABC):
    """Persistence of patients, their identifiers and relationships"""

    @abstractmethod
    async def save_patient(self, patient: Patient) -> Patient:
        pass

    @abstractmethod
    async def save_patient_identifier(self, identifier: PatientIdentifier) -> None:
        pass

    @abstractmethod
    async def save_relationship(self, relationship: Relationship) -> Relationship:
        pass

    @abstractmethod
    async def get_patient_by_uuid(self, uuid: str) -> Optional[Patient]:
        pass

    @abstractmethod
    async def find_candidates(self, match_keys: Dict[str, Any], limit: int) -> List[Patient]:
        """
        Find patients whose stored match keys equal the given ones

        Args:
            match_keys: Subset of the keys produced by build_match_keys
            limit: Maximum number of patients to return
        """
        pass

    @abstractmethod
    async def find_names(self, name_field: str, phrase: str, limit: int) -> List[str]:
        """Distinct stored values of a name field starting with phrase"""
        pass


def build_match_keys(patient: Patient) -> Dict[str, Any]:
    """Blocking keys stored with each patient for similar patient search"""
    return {
        "given_name": normalize_name(patient.given_name),
        "family_name": normalize_name(patient.family_name),
        "given_name_soundex": soundex(patient.given_name),
        "family_name_soundex": soundex(patient.family_name),
        "birth_year": patient.birthdate.year if patient.birthdate else None
    }


class PatientRepository(PatientStore, BaseRepository):
    """MongoDB-backed patient store"""

    NAME_FIELDS = {
        "given_name": "names.given_name",
        "family_name": "names.family_name"
    }

    def __init__(self, db_manager: DatabaseManager):
        BaseRepository.__init__(self, db_manager, "patients")
        self.relationships_collection = db_manager.get_collection("relationships")
        self.counters_collection = db_manager.get_collection("counters")

    async def save_patient(self, patient: Patient) -> Patient:
        """Insert a new patient or replace an existing one"""
        if patient.person_id is None:
            patient.person_id = await self._next_patient_id()
        if patient.date_created is None:
            patient.date_created = datetime.now(timezone.utc)

        doc = patient.to_dict()
        doc["match_keys"] = build_match_keys(patient)

        await self.update_one({"uuid": patient.uuid}, {"$set": doc}, upsert=True)
        logger.info(f"Saved patient {patient.uuid} with patient id {patient.person_id}")
        return patient

    async def save_patient_identifier(self, identifier: PatientIdentifier) -> None:
        if not identifier.patient_uuid:
            raise ValueError("Identifier is not attached to a patient")

        updated = await self.update_one(
            {"uuid": identifier.patient_uuid},
            {"$push": {"identifiers": identifier.to_dict()}}
        )
        if not updated:
            raise LookupError(f"No patient with uuid {identifier.patient_uuid}")

    async def save_relationship(self, relationship: Relationship) -> Relationship:
        doc = relationship.to_dict()
        doc["created_at"] = datetime.now(timezone.utc)
        try:
            await self.relationships_collection.insert_one(doc)
        except Exception as e:
            logger.error(f"Error saving relationship {relationship.uuid}: {e}")
            raise
        return relationship

    async def get_patient_by_uuid(self, uuid: str) -> Optional[Patient]:
        doc = await self.find_one({"uuid": uuid})
        return Patient.from_dict(doc) if doc else None

    async def find_candidates(self, match_keys: Dict[str, Any], limit: int) -> List[Patient]:
        query = {
            f"match_keys.{key}": value
            for key, value in match_keys.items()
            if value not in (None, '')
        }
        if not query:
            return []

        docs = await self.find_many(query, limit=limit)
        return [Patient.from_dict(doc) for doc in docs]

    async def find_names(self, name_field: str, phrase: str, limit: int) -> List[str]:
        if name_field not in self.NAME_FIELDS:
            raise ValueError(f"Unknown name field: {name_field}")

        path = self.NAME_FIELDS[name_field]
        pattern = re.compile(f"^{re.escape(phrase)}", re.IGNORECASE)
        values = await self.distinct(path, {path: pattern})

        names = sorted({value for value in values if value and pattern.match(value)}, key=str.lower)
        return names[:limit]

    async def _next_patient_id(self) -> int:
        doc = await self.counters_collection.find_one_and_update(
            {"_id": "patient_id"},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        return doc["seq"]

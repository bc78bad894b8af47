"""
MongoDB repository tests against motor collection doubles
"""

from datetime import datetime

import pytest
from pymongo import ReturnDocument

from registrationcore.core.database import BaseRepository
from registrationcore.domains.identifier.models.identifier_source import IdentifierSource
from registrationcore.domains.identifier.repositories.identifier_source_repository import IdentifierSourceRepository
from registrationcore.domains.identifier.services.identifier_validation import validate_identifier
from registrationcore.domains.patient.models.patient import PatientIdentifier, Relationship
from registrationcore.domains.patient.repositories.patient_repository import PatientRepository


@pytest.fixture
def patients(mongo):
    return mongo.get_collection("patients")


@pytest.fixture
def counters(mongo):
    return mongo.get_collection("counters")


class TestDatabaseManager:

    def test_unknown_collection(self, mongo):
        with pytest.raises(KeyError):
            mongo.get_collection("encounters")

    def test_collections_require_initialize(self, mongo):
        mongo._initialized = False
        with pytest.raises(RuntimeError):
            mongo.get_collection("patients")


class TestBaseRepository:

    @pytest.mark.anyio
    async def test_update_stamps_updated_at(self, mongo, patients):
        repository = BaseRepository(mongo, "patients")

        assert await repository.update_one({"uuid": "a"}, {"$set": {"gender": "F"}}) is True

        query, update = patients.update_one.call_args.args
        assert query == {"uuid": "a"}
        assert update["$set"]["gender"] == "F"
        assert isinstance(update["$set"]["updated_at"], datetime)

    @pytest.mark.anyio
    async def test_update_without_match(self, mongo, patients):
        patients.update_one.return_value.modified_count = 0
        repository = BaseRepository(mongo, "patients")

        assert await repository.update_one({"uuid": "missing"}, {"$set": {"gender": "F"}}) is False

    @pytest.mark.anyio
    async def test_find_many_sorts_and_limits(self, mongo, patients):
        repository = BaseRepository(mongo, "patients")

        await repository.find_many({"gender": "F"}, limit=5, sort=[("uuid", 1)])

        cursor = patients.find.return_value
        assert patients.find.call_args.args == ({"gender": "F"}, {"_id": 0})
        cursor.limit.assert_called_once_with(5)
        cursor.sort.assert_called_once_with([("uuid", 1)])
        cursor.to_list.assert_awaited_once_with(length=5)

    @pytest.mark.anyio
    async def test_errors_are_reraised(self, mongo, patients):
        patients.find_one.side_effect = RuntimeError("connection reset")
        repository = BaseRepository(mongo, "patients")

        with pytest.raises(RuntimeError):
            await repository.find_one({"uuid": "a"})


class TestIdentifierSourceRepository:

    @pytest.fixture
    def sources(self, mongo):
        return mongo.get_collection("identifier_sources")

    @pytest.mark.anyio
    async def test_generated_identifier_carries_check_digit(self, mongo, sources, openmrs_id_type):
        source = IdentifierSource(source_id=3, name="OpenMRS", identifier_type=openmrs_id_type, prefix="PT", min_length=4)
        sources.find_one_and_update.return_value = {"source_id": 3, "sequence": 7}
        repository = IdentifierSourceRepository(mongo)

        identifier = await repository.generate_identifier(source)

        assert identifier == "PT0007-4"
        validate_identifier(identifier, openmrs_id_type)

        query, update = sources.find_one_and_update.call_args.args
        kwargs = sources.find_one_and_update.call_args.kwargs
        assert query == {"source_id": 3}
        assert update == {"$inc": {"sequence": 1}}
        assert kwargs["return_document"] == ReturnDocument.AFTER
        assert kwargs["upsert"] is False

    @pytest.mark.anyio
    async def test_generated_identifier_without_validator(self, mongo, sources, identifier_source, plain_id_type):
        sources.find_one_and_update.return_value = {"source_id": 1, "sequence": 12}
        repository = IdentifierSourceRepository(mongo)

        identifier = await repository.generate_identifier(identifier_source)

        assert identifier == "PT0012"
        validate_identifier(identifier, plain_id_type)

    @pytest.mark.anyio
    async def test_generate_from_missing_source(self, mongo, identifier_source):
        repository = IdentifierSourceRepository(mongo)

        with pytest.raises(LookupError):
            await repository.generate_identifier(identifier_source)

    @pytest.mark.anyio
    async def test_get_identifier_source(self, mongo, sources, identifier_source):
        sources.find_one.return_value = identifier_source.to_dict()
        repository = IdentifierSourceRepository(mongo)

        assert await repository.get_identifier_source(1) == identifier_source
        assert sources.find_one.call_args.args == ({"source_id": 1}, {"_id": 0})

    @pytest.mark.anyio
    async def test_unknown_identifier_source(self, mongo):
        assert await IdentifierSourceRepository(mongo).get_identifier_source(99) is None

    @pytest.mark.anyio
    async def test_new_source_starts_before_first_value(self, mongo, sources, identifier_source):
        await IdentifierSourceRepository(mongo).save_identifier_source(identifier_source)

        query, update = sources.update_one.call_args.args
        assert query == {"source_id": 1}
        assert update["$setOnInsert"] == {"sequence": 0}
        assert sources.update_one.call_args.kwargs["upsert"] is True


class TestPatientRepository:

    @pytest.mark.anyio
    async def test_new_patient_gets_next_person_id(self, mongo, patients, counters, john_smith):
        counters.find_one_and_update.return_value = {"_id": "patient_id", "seq": 5}
        repository = PatientRepository(mongo)

        saved = await repository.save_patient(john_smith)

        assert saved is john_smith
        assert john_smith.person_id == 5
        assert isinstance(john_smith.date_created, datetime)
        assert counters.find_one_and_update.call_args.args == ({"_id": "patient_id"}, {"$inc": {"seq": 1}})

        query, update = patients.update_one.call_args.args
        doc = update["$set"]
        assert query == {"uuid": john_smith.uuid}
        assert patients.update_one.call_args.kwargs["upsert"] is True
        assert doc["patient_id"] == 5
        assert doc["match_keys"]["family_name"] == "smith"
        assert doc["match_keys"]["family_name_soundex"] == "S530"
        assert doc["match_keys"]["birth_year"] == 1980

    @pytest.mark.anyio
    async def test_existing_person_keeps_its_id(self, mongo, counters, john_smith):
        john_smith.person_id = 42

        await PatientRepository(mongo).save_patient(john_smith)

        assert john_smith.person_id == 42
        counters.find_one_and_update.assert_not_called()

    @pytest.mark.anyio
    async def test_identifier_must_belong_to_a_patient(self, mongo, plain_id_type):
        identifier = PatientIdentifier(identifier="PT0001", identifier_type=plain_id_type)

        with pytest.raises(ValueError):
            await PatientRepository(mongo).save_patient_identifier(identifier)

    @pytest.mark.anyio
    async def test_identifier_for_missing_patient(self, mongo, patients, plain_id_type):
        patients.update_one.return_value.modified_count = 0
        identifier = PatientIdentifier(identifier="PT0001", identifier_type=plain_id_type, patient_uuid="gone")

        with pytest.raises(LookupError):
            await PatientRepository(mongo).save_patient_identifier(identifier)

    @pytest.mark.anyio
    async def test_identifier_is_pushed(self, mongo, patients, plain_id_type):
        identifier = PatientIdentifier(identifier="PT0001", identifier_type=plain_id_type, patient_uuid="p-1")

        await PatientRepository(mongo).save_patient_identifier(identifier)

        query, update = patients.update_one.call_args.args
        assert query == {"uuid": "p-1"}
        assert update["$push"]["identifiers"]["identifier"] == "PT0001"

    @pytest.mark.anyio
    async def test_save_relationship(self, mongo, patient_factory, john_smith):
        relationship = Relationship("sibling", person_a=patient_factory("A", "A"), person_b=john_smith)

        await PatientRepository(mongo).save_relationship(relationship)

        doc = mongo.get_collection("relationships").insert_one.call_args.args[0]
        assert doc["uuid"] == relationship.uuid
        assert doc["person_b"] == john_smith.uuid
        assert "created_at" in doc

    @pytest.mark.anyio
    async def test_find_candidates_ignores_blank_keys(self, mongo, patients, john_smith):
        patients.find.return_value.to_list.return_value = [john_smith.to_dict()]

        found = await PatientRepository(mongo).find_candidates(
            {"family_name_soundex": "S530", "given_name": "", "birth_year": None}, limit=20
        )

        assert [patient.uuid for patient in found] == [john_smith.uuid]
        assert patients.find.call_args.args[0] == {"match_keys.family_name_soundex": "S530"}

    @pytest.mark.anyio
    async def test_find_candidates_without_keys(self, mongo, patients):
        assert await PatientRepository(mongo).find_candidates({"given_name": ""}, limit=20) == []
        patients.find.assert_not_called()

    @pytest.mark.anyio
    async def test_find_names_is_case_insensitive_prefix(self, mongo, patients):
        patients.distinct.return_value = ["Smith", "smithers", "Jones", None, "Smyth"]
        repository = PatientRepository(mongo)

        assert await repository.find_names("family_name", "smi", 10) == ["Smith", "smithers"]
        assert await repository.find_names("family_name", "smi", 1) == ["Smith"]
        assert patients.distinct.call_args.args[0] == "names.family_name"

    @pytest.mark.anyio
    async def test_find_names_unknown_field(self, mongo):
        with pytest.raises(ValueError):
            await PatientRepository(mongo).find_names("nickname", "x", 10)

    @pytest.mark.anyio
    async def test_get_missing_patient(self, mongo):
        assert await PatientRepository(mongo).get_patient_by_uuid("missing") is None

"""
Patient domain models
"""

from typing import Optional, List, Dict, Any, Set
from datetime import date, datetime
from dataclasses import dataclass, field
from uuid import uuid4


def _new_uuid() -> str:
    return str(uuid4())


@dataclass
class User:
    """A system user, e.g. the person registering a patient"""
    uuid: str = field(default_factory=_new_uuid)
    user_id: Optional[int] = None
    username: Optional[str] = None


@dataclass
class Location:
    """Node of the organizational location tree"""
    name: str
    uuid: str = field(default_factory=_new_uuid)
    parent: Optional["Location"] = None
    tags: Set[str] = field(default_factory=set)

    def has_tag(self, tag_name: str) -> bool:
        return tag_name in self.tags

    def to_dict(self) -> Dict[str, Any]:
        return {"uuid": self.uuid, "name": self.name}


@dataclass
class PatientIdentifierType:
    """
    Identifier type

    format is a regular expression the whole identifier must match;
    validator names a check-digit validator (e.g. "luhn").
    """
    name: str
    uuid: str = field(default_factory=_new_uuid)
    format: Optional[str] = None
    format_description: Optional[str] = None
    validator: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uuid": self.uuid,
            "name": self.name,
            "format": self.format,
            "format_description": self.format_description,
            "validator": self.validator
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PatientIdentifierType":
        return cls(
            name=data["name"],
            uuid=data.get("uuid") or _new_uuid(),
            format=data.get("format"),
            format_description=data.get("format_description"),
            validator=data.get("validator")
        )


@dataclass
class PatientIdentifier:
    """Identifier value of a given type, assigned at a location"""
    identifier: str
    identifier_type: PatientIdentifierType
    location: Optional[Location] = None
    preferred: bool = False
    uuid: str = field(default_factory=_new_uuid)
    patient_uuid: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uuid": self.uuid,
            "identifier": self.identifier,
            "identifier_type": self.identifier_type.to_dict(),
            "location": self.location.to_dict() if self.location else None,
            "preferred": self.preferred
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PatientIdentifier":
        location = data.get("location")
        return cls(
            identifier=data["identifier"],
            identifier_type=PatientIdentifierType.from_dict(data["identifier_type"]),
            location=Location(name=location["name"], uuid=location["uuid"]) if location else None,
            preferred=data.get("preferred", False),
            uuid=data.get("uuid") or _new_uuid()
        )


@dataclass
class PersonName:
    """Person name"""
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    middle_name: Optional[str] = None
    preferred: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "given_name": self.given_name,
            "middle_name": self.middle_name,
            "family_name": self.family_name,
            "preferred": self.preferred
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PersonName":
        return cls(
            given_name=data.get("given_name"),
            family_name=data.get("family_name"),
            middle_name=data.get("middle_name"),
            preferred=data.get("preferred", True)
        )


@dataclass
class Person:
    """
    Person identity

    person_id is assigned by the patient store on first save; a Person that
    already has one existed before it was registered as a patient.
    """
    names: List[PersonName] = field(default_factory=list)
    gender: Optional[str] = None
    birthdate: Optional[date] = None
    uuid: str = field(default_factory=_new_uuid)
    person_id: Optional[int] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    creator: Optional[User] = None
    date_created: Optional[datetime] = None

    @property
    def preferred_name(self) -> Optional[PersonName]:
        for name in self.names:
            if name.preferred:
                return name
        return self.names[0] if self.names else None

    @property
    def given_name(self) -> Optional[str]:
        name = self.preferred_name
        return name.given_name if name else None

    @property
    def family_name(self) -> Optional[str]:
        name = self.preferred_name
        return name.family_name if name else None


@dataclass
class Patient(Person):
    """Person registered as a patient, carrying identifiers"""
    identifiers: List[PatientIdentifier] = field(default_factory=list)

    def add_identifier(self, identifier: PatientIdentifier) -> None:
        identifier.patient_uuid = self.uuid
        self.identifiers.append(identifier)

    def get_patient_identifiers(self, identifier_type: PatientIdentifierType) -> List[PatientIdentifier]:
        return [
            identifier for identifier in self.identifiers
            if identifier.identifier_type.uuid == identifier_type.uuid
        ]

    def get_patient_identifier(self, identifier_type_uuid: str) -> Optional[PatientIdentifier]:
        for identifier in self.identifiers:
            if identifier.identifier_type.uuid == identifier_type_uuid:
                return identifier
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage and remote payloads"""
        return {
            "uuid": self.uuid,
            "patient_id": self.person_id,
            "names": [name.to_dict() for name in self.names],
            "gender": self.gender,
            "birthdate": self.birthdate.isoformat() if self.birthdate else None,
            "attributes": dict(self.attributes),
            "identifiers": [identifier.to_dict() for identifier in self.identifiers],
            "creator": {"uuid": self.creator.uuid, "user_id": self.creator.user_id} if self.creator else None,
            "date_created": self.date_created
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Patient":
        birthdate = data.get("birthdate")
        if isinstance(birthdate, str):
            birthdate = date.fromisoformat(birthdate[:10])
        elif isinstance(birthdate, datetime):
            birthdate = birthdate.date()

        creator = data.get("creator")
        patient = cls(
            names=[PersonName.from_dict(name) for name in data.get("names", [])],
            gender=data.get("gender"),
            birthdate=birthdate,
            uuid=data.get("uuid") or _new_uuid(),
            person_id=data.get("patient_id"),
            attributes=dict(data.get("attributes") or {}),
            creator=User(uuid=creator["uuid"], user_id=creator.get("user_id")) if creator else None,
            date_created=data.get("date_created")
        )
        for identifier in data.get("identifiers", []):
            patient.add_identifier(PatientIdentifier.from_dict(identifier))
        return patient


@dataclass
class Relationship:
    """
    Relationship between two persons

    In a registration request exactly one side is left unset; it is filled
    with the newly registered patient.
    """
    relationship_type: str
    person_a: Optional[Person] = None
    person_b: Optional[Person] = None
    uuid: str = field(default_factory=_new_uuid)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uuid": self.uuid,
            "relationship_type": self.relationship_type,
            "person_a": self.person_a.uuid if self.person_a else None,
            "person_b": self.person_b.uuid if self.person_b else None
        }

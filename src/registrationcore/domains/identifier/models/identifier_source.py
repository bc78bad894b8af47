"""
Identifier source models
"""

from typing import Optional, Dict, Any
from dataclasses import dataclass

from ...patient.models.patient import PatientIdentifierType


@dataclass
class IdentifierSource:
    """Generator of identifier values for one identifier type"""
    source_id: int
    name: str
    identifier_type: PatientIdentifierType
    prefix: str = ""
    min_length: int = 1
    first_sequence_value: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "name": self.name,
            "identifier_type": self.identifier_type.to_dict(),
            "prefix": self.prefix,
            "min_length": self.min_length,
            "first_sequence_value": self.first_sequence_value
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IdentifierSource":
        return cls(
            source_id=data["source_id"],
            name=data.get("name", ""),
            identifier_type=PatientIdentifierType.from_dict(data["identifier_type"]),
            prefix=data.get("prefix") or "",
            min_length=data.get("min_length", 1),
            first_sequence_value=data.get("first_sequence_value", 1)
        )

    def format_sequence(self, sequence: int) -> str:
        """Render prefix + zero padded sequence value"""
        return f"{self.prefix}{str(sequence).zfill(self.min_length)}"


def parse_source_id(value: Optional[str]) -> int:
    """Parse a configured identifier source id; raises ValueError if not numeric"""
    return int(str(value).strip())

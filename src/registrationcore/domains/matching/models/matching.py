"""
Matching domain models
"""

from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, Field

from ...patient.models.patient import Patient


class MatchOrigin(str, Enum):
    """Where a match candidate was found"""
    LOCAL = "local"
    REMOTE = "remote"


@dataclass
class PatientAndMatchQuality:
    """
    A scored reference to an existing patient

    Query-time value only; never persisted. Local and remote scores share
    the same [cutoff, 1.0] scale and are compared as-is.
    """
    patient: Patient
    score: float
    matched_fields: List[str] = field(default_factory=list)
    origin: MatchOrigin = MatchOrigin.LOCAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            'patient_uuid': self.patient.uuid,
            'score': self.score,
            'matched_fields': list(self.matched_fields),
            'origin': self.origin.value
        }


class RemoteMatch(BaseModel):
    """Single candidate returned by the remote index"""
    patient: Dict[str, Any]
    score: float = Field(..., ge=0.0, le=1.0)
    matched_fields: List[str] = Field(default_factory=list, alias="matchedFields")

    model_config = {"populate_by_name": True}


class RemoteMatchResponse(BaseModel):
    """Remote index match response"""
    matches: List[RemoteMatch] = Field(default_factory=list)
    tracking_id: Optional[str] = Field(None, alias="trackingId")

    model_config = {"populate_by_name": True}

"""
Identifier source repository - issues identifier values
"""

from abc import ABC, abstractmethod
from typing import Optional
import logging

from ..models.identifier_source import IdentifierSource
from ..services.identifier_validation import get_check_digit_validator
from ....core.database import BaseRepository, DatabaseManager


logger = logging.getLogger(__name__)


class IdentifierSourceProvider(ABC):
    """Looks up identifier sources and generates values from them"""

    @abstractmethod
    async def get_identifier_source(self, source_id: int) -> Optional[IdentifierSource]:
        pass

    @abstractmethod
    async def generate_identifier(self, source: IdentifierSource, comment: Optional[str] = None) -> str:
        """
        Generate the next identifier value of a source

        Values must be unique within the source's identifier type even under
        concurrent generation.
        """
        pass


class IdentifierSourceRepository(IdentifierSourceProvider, BaseRepository):
    """
    MongoDB-backed identifier sources.

    Each source document keeps its own sequence counter; generation advances
    it with a single atomic $inc so concurrent callers never share a value.
    """

    def __init__(self, db_manager: DatabaseManager):
        BaseRepository.__init__(self, db_manager, "identifier_sources")

    async def get_identifier_source(self, source_id: int) -> Optional[IdentifierSource]:
        doc = await self.find_one({"source_id": source_id})
        return IdentifierSource.from_dict(doc) if doc else None

    async def save_identifier_source(self, source: IdentifierSource) -> None:
        await self.update_one(
            {"source_id": source.source_id},
            {"$set": source.to_dict(), "$setOnInsert": {"sequence": source.first_sequence_value - 1}},
            upsert=True
        )

    async def generate_identifier(self, source: IdentifierSource, comment: Optional[str] = None) -> str:
        doc = await self.find_one_and_increment({"source_id": source.source_id}, "sequence")
        if doc is None:
            raise LookupError(f"Identifier source {source.source_id} does not exist")

        identifier = source.format_sequence(doc["sequence"])
        if source.identifier_type.validator:
            identifier = get_check_digit_validator(source.identifier_type.validator).get_valid_identifier(identifier)

        logger.info(f"Generated identifier {identifier} from source {source.name}"
                    + (f" ({comment})" if comment else ""))
        return identifier

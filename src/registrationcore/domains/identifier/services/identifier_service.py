"""
Identifier service - resolves the configured identifier source and issues identifiers
"""

import logging
import threading
from typing import Optional

from .identifier_validation import validate_identifier
from ..models.identifier_source import IdentifierSource, parse_source_id
from ..repositories.identifier_source_repository import IdentifierSourceProvider
from ...patient.models.patient import PatientIdentifierType
from ....core.constants import GP_IDENTIFIER_SOURCE_ID
from ....core.exceptions import ConfigurationError, ValidationError
from ....core.properties import PropertyListener, PropertyStore


logger = logging.getLogger(__name__)


class IdentifierSourceCache:
    """
    Process-wide cell holding the resolved identifier source.

    Readers take a single reference; writers replace it under a lock, so an
    invalidation is never lost behind a concurrent resolve.
    """

    def __init__(self):
        self._source: Optional[IdentifierSource] = None
        self._lock = threading.Lock()
        self._generation = 0

    def get(self) -> Optional[IdentifierSource]:
        return self._source

    @property
    def generation(self) -> int:
        return self._generation

    def set(self, source: IdentifierSource, generation: int) -> bool:
        """Store a resolved source unless the cell was invalidated since generation was read"""
        with self._lock:
            if generation != self._generation:
                return False
            self._source = source
            return True

    def invalidate(self) -> None:
        with self._lock:
            self._source = None
            self._generation += 1


# Shared by every allocator in the process
identifier_source_cache = IdentifierSourceCache()


class IdentifierAllocator(PropertyListener):
    """Allocates and validates patient identifiers"""

    def __init__(
        self,
        property_store: PropertyStore,
        source_provider: IdentifierSourceProvider,
        cache: Optional[IdentifierSourceCache] = None
    ):
        self.property_store = property_store
        self.source_provider = source_provider
        self.cache = cache or identifier_source_cache
        property_store.add_listener(self)

    async def resolve_source(self) -> IdentifierSource:
        """
        Resolve the identifier source configured in the property store

        Raises:
            ConfigurationError: property unset, not numeric, or naming no source
        """
        cached = self.cache.get()
        if cached is not None:
            return cached

        generation = self.cache.generation
        source_id = await self.property_store.get_property(GP_IDENTIFIER_SOURCE_ID)
        if source_id is None or not str(source_id).strip():
            raise ConfigurationError(
                "Please set the id of the identifier source to use to generate patient identifiers"
            )

        try:
            parsed_id = parse_source_id(source_id)
        except ValueError as e:
            raise ConfigurationError("Identifier source id should be a number") from e

        source = await self.source_provider.get_identifier_source(parsed_id)
        if source is None:
            raise ConfigurationError(f"cannot find identifier source with id:{source_id}")

        self.cache.set(source, generation)
        logger.info(f"Resolved identifier source {source.name} ({source.source_id})")
        return source

    async def generate(self, source: IdentifierSource) -> str:
        identifier = await self.source_provider.generate_identifier(source, None)
        if not identifier or not identifier.strip():
            raise ConfigurationError(f"Identifier source {source.name} returned a blank identifier")
        return identifier

    def validate(self, identifier: str, identifier_type: PatientIdentifierType) -> None:
        """Raises ValidationError if the identifier does not fit the type's format"""
        validate_identifier(identifier, identifier_type)

    def is_valid(self, identifier: str, identifier_type: PatientIdentifierType) -> bool:
        try:
            self.validate(identifier, identifier_type)
            return True
        except ValidationError:
            return False

    # Property listener
    def supports_property_name(self, name: str) -> bool:
        return name == GP_IDENTIFIER_SOURCE_ID

    def property_changed(self, name: str) -> None:
        logger.info(f"Property {name} changed, clearing cached identifier source")
        self.cache.invalidate()

    def property_deleted(self, name: str) -> None:
        logger.info(f"Property {name} deleted, clearing cached identifier source")
        self.cache.invalidate()

"""
Location resolution for identifier assignment
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from ...patient.models.patient import Location
from ....core.config import RegistrationConfig, get_registration_config
from ....core.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


class LocationDirectory(ABC):
    """Source of the system default location"""

    @abstractmethod
    async def get_default_location(self) -> Optional[Location]:
        pass


class LocationResolver:
    """Finds the location whose namespace owns identifiers issued at a location"""

    def __init__(self, config: Optional[RegistrationConfig] = None):
        self.config = config or get_registration_config()

    def find_assignment_authority(self, location: Optional[Location]) -> Optional[Location]:
        """
        Walk up from location to the nearest location (itself included)
        carrying the identifier assignment tag

        Returns:
            The tagged location, or None if no ancestor up to the root has the tag

        Raises:
            ConfigurationError: reaching a tag needs more than location_max_depth parent hops
        """
        current = location
        hops = 0
        while current is not None:
            if current.has_tag(self.config.assignment_location_tag):
                logger.debug(f"Assignment authority for {location.name} is {current.name} ({hops} hops)")
                return current

            current = current.parent
            hops += 1
            if current is not None and hops > self.config.location_max_depth:
                raise ConfigurationError(
                    f"Location hierarchy above {location.name} exceeds {self.config.location_max_depth} levels"
                )

        return None

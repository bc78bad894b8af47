"""
Strategy registry

Maps binding names (as stored in the property store) to strategy
instances, resolved at call time.
"""

import logging
from typing import Any, Dict, List, Type, TypeVar

from ..core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AlgorithmRegistry:
    """Named strategy instances"""

    def __init__(self):
        self._bindings: Dict[str, Any] = {}

    def register(self, name: str, implementation: Any) -> None:
        if name in self._bindings:
            logger.info(f"Replacing strategy bound to {name}")
        self._bindings[name] = implementation

    def unregister(self, name: str) -> None:
        self._bindings.pop(name, None)

    def names(self) -> List[str]:
        return sorted(self._bindings)

    def resolve(self, name: str, capability: Type[T], property_name: str) -> T:
        """
        Get the strategy bound to name

        Args:
            name: Binding name read from the property store
            capability: Interface the strategy must implement
            property_name: Property the name came from, for error messages

        Raises:
            ConfigurationError: nothing is bound to name, or the bound
                strategy does not implement capability
        """
        if name not in self._bindings:
            available = ', '.join(self.names())
            raise ConfigurationError(
                f"{property_name} points to unknown strategy '{name}'. Available strategies: {available}"
            )

        implementation = self._bindings[name]
        if not isinstance(implementation, capability):
            raise ConfigurationError(
                f"{property_name} must point to a strategy implementing {capability.__name__}"
            )
        return implementation

from typing import Dict, List, Iterable, Optional
import structlog

from agent_engine.domain.errors import (
    DuplicateCapabilityError, RegistryFrozenError, UnknownCapabilityError
)
from agent_engine.domain.tool.capability import Capability

logger = structlog.get_logger(__name__)


class CapabilityRegistry:
    """Registry for managing available capabilities"""

    def __init__(self, capabilities: Optional[Iterable[Capability]] = None):
        self._capabilities: Dict[str, Capability] = {}
        self._frozen = False
        for item in capabilities or ():
            self.register(item)

    def register(self, capability: Capability) -> Capability:
        """Register a new capability"""

        if self._frozen:
            raise RegistryFrozenError(capability.name)
        if capability.name in self._capabilities:
            raise DuplicateCapabilityError(capability.name)

        self._capabilities[capability.name] = capability
        logger.debug("Capability registered", capability=capability.name)
        return capability

    def resolve(self, name: str) -> Capability:
        """Resolve a capability by exact name"""

        try:
            return self._capabilities[name]
        except KeyError:
            raise UnknownCapabilityError(name, self.names()) from None

    def freeze(self) -> None:
        """Disallow further registration"""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def names(self) -> List[str]:
        return list(self._capabilities)

    def get_capabilities(self) -> List[Capability]:
        """Get all capabilities in registration order"""
        return list(self._capabilities.values())

    def __contains__(self, name: object) -> bool:
        return name in self._capabilities

    def __len__(self) -> int:
        return len(self._capabilities)

"""Access to KeyManagementProvider resources in the cluster."""

from abc import ABC, abstractmethod
import copy
import logging

from key_sync.exceptions import ObjectNotFoundError
from key_sync.manifest import KeyManagementProvider, NamedResource

__all__ = [
    "ResourceClient",
    "InMemoryResourceClient",
]

_LOGGER = logging.getLogger(__name__)


class ResourceClient(ABC):
    """Reads resources and writes their status subresource."""

    @abstractmethod
    async def get(self, resource_id: NamedResource) -> KeyManagementProvider:
        """Return the current resource or raise ObjectNotFoundError."""

    @abstractmethod
    async def update_status(self, resource: KeyManagementProvider) -> None:
        """Persist the status of the resource."""


class InMemoryResourceClient(ResourceClient):
    """ResourceClient holding resources in memory."""

    def __init__(self) -> None:
        """Initialize InMemoryResourceClient."""
        self._resources: dict[NamedResource, KeyManagementProvider] = {}

    def add(self, resource: KeyManagementProvider) -> None:
        """Create or replace a resource."""
        self._resources[resource.resource_id] = copy.deepcopy(resource)

    def remove(self, resource_id: NamedResource) -> None:
        """Delete a resource if it exists."""
        self._resources.pop(resource_id, None)

    async def get(self, resource_id: NamedResource) -> KeyManagementProvider:
        """Return a copy of the stored resource."""
        if (resource := self._resources.get(resource_id)) is None:
            raise ObjectNotFoundError(f"Resource {resource_id} not found")
        return copy.deepcopy(resource)

    async def update_status(self, resource: KeyManagementProvider) -> None:
        """Store the status of an existing resource."""
        if (current := self._resources.get(resource.resource_id)) is None:
            raise ObjectNotFoundError(f"Resource {resource.resource_id} not found")
        _LOGGER.debug("Updating status of %s", resource.resource_id)
        current.status = copy.deepcopy(resource.status)

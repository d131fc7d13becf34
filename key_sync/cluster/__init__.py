"""Cluster resource access and status writing."""

from .client import InMemoryResourceClient, ResourceClient
from .status import write_provider_status

__all__ = [
    "InMemoryResourceClient",
    "ResourceClient",
    "write_provider_status",
]

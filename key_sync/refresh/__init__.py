"""Refreshers perform a single reconcile cycle for a resource."""

from key_sync.config import KUBE_REFRESHER

from .factory import RefresherFactory, RefresherRegistry
from .kube_refresher import KubeRefresher, parse_duration
from .refresher import ReconcileResult, Refresher

__all__ = [
    "KubeRefresher",
    "ReconcileResult",
    "Refresher",
    "RefresherFactory",
    "RefresherRegistry",
    "default_refresher_registry",
    "parse_duration",
]


def default_refresher_registry() -> RefresherRegistry:
    """Return a registry holding the built in refreshers."""
    registry = RefresherRegistry()
    registry.register(KUBE_REFRESHER, KubeRefresher.from_config)
    return registry

"""Configuration objects for key-sync."""

from dataclasses import dataclass

MAX_BRIEF_ERROR_LENGTH = 30
"""Number of characters of an error kept in the brief error status field."""

KUBE_REFRESHER = "kubeRefresher"
"""Registry name of the refresher driven by cluster resource events."""


@dataclass
class ReconcilerConfig:
    """Configuration for the KeyManagementProviderReconciler."""

    refresher_type: str = KUBE_REFRESHER
    """The refresher used to perform each reconcile cycle."""


@dataclass
class StatusConfig:
    """Configuration for writing resource status."""

    max_brief_error_length: int = MAX_BRIEF_ERROR_LENGTH

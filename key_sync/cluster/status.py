"""Writing the status of a KeyManagementProvider resource."""

import logging

from key_sync.config import StatusConfig
from key_sync.exceptions import KeySyncException
from key_sync.manifest import KeyManagementProvider
from key_sync.store import ProviderStatus
from key_sync.store.status import brief_error, now, status_to_dict

from .client import ResourceClient

__all__ = [
    "write_provider_status",
]

_LOGGER = logging.getLogger(__name__)


async def write_provider_status(
    client: ResourceClient,
    resource: KeyManagementProvider,
    is_success: bool,
    error: Exception | None = None,
    properties: ProviderStatus | None = None,
    config: StatusConfig | None = None,
) -> None:
    """Record the outcome of a fetch on the resource status.

    A failure to write the status is logged and not raised since the next
    reconcile cycle writes it again.
    """
    config = config or StatusConfig()
    status = resource.status
    status.is_success = is_success
    status.last_fetched_time = now()
    if is_success:
        status.error = None
        status.brief_error = None
        status.properties = status_to_dict(properties or {})
    else:
        message = str(error) if error is not None else ""
        status.error = message
        status.brief_error = brief_error(message, config.max_brief_error_length)
    try:
        await client.update_status(resource)
    except KeySyncException as err:
        _LOGGER.error("Unable to update status of %s: %s", resource.resource_id, err)

"""Tests for the refresher registry."""

from collections.abc import Mapping
import datetime
from typing import Any

import pytest

from key_sync.exceptions import (
    ConfigException,
    RefresherNotFoundError,
    RegistrationError,
)
from key_sync.refresh import (
    KubeRefresher,
    ReconcileResult,
    Refresher,
    RefresherRegistry,
    default_refresher_registry,
)


class StaticRefresher(Refresher):
    def __init__(self, config: Mapping[str, Any]) -> None:
        self.config = config

    async def refresh(self) -> None:
        pass

    def get_result(self) -> ReconcileResult:
        return ReconcileResult(requeue_after=datetime.timedelta(seconds=5))


def test_default_registry() -> None:
    """Test the built in refresher is registered."""
    assert default_refresher_registry().names() == ["kubeRefresher"]


def test_register_errors() -> None:
    """Test wiring errors are detected at registration."""
    registry = RefresherRegistry()
    with pytest.raises(RegistrationError, match="cannot be None"):
        registry.register("static", None)
    registry.register("static", StaticRefresher)
    with pytest.raises(RegistrationError, match="already registered"):
        registry.register("static", StaticRefresher)


@pytest.mark.parametrize("config", [{}, {"type": ""}, {"type": 5}])
def test_invalid_type(config: dict[str, Any]) -> None:
    """Test a missing or non string type is a configuration error."""
    with pytest.raises(ConfigException):
        default_refresher_registry().create_refresher_from_config(config)


def test_not_found() -> None:
    """Test an unregistered type."""
    with pytest.raises(RefresherNotFoundError, match="unknown not found"):
        default_refresher_registry().create_refresher_from_config({"type": "unknown"})


async def test_create() -> None:
    """Test the factory receives the whole configuration."""
    registry = RefresherRegistry()
    registry.register("static", StaticRefresher)
    refresher = registry.create_refresher_from_config({"type": "static", "extra": 1})
    assert isinstance(refresher, StaticRefresher)
    assert refresher.config == {"type": "static", "extra": 1}
    await refresher.refresh()
    assert refresher.get_result().requeue


def test_kube_refresher_missing_config() -> None:
    """Test the kube refresher requires its collaborators."""
    with pytest.raises(ConfigException, match="missing client, request, store, providers"):
        KubeRefresher.from_config({"type": "kubeRefresher"})

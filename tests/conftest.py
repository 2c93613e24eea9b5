"""Pytest configuration and fixtures."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from action_context import Action, ActionContext
from cluster import ClusterConnection


@pytest.fixture
def connection():
    """Connection handle to a fake API server."""
    return ClusterConnection(api_server="https://cluster.test", token="s3cret")


@pytest.fixture
def sample_subject():
    """Sample custom resource being reconciled."""
    return {
        "apiVersion": "example.com/v1",
        "kind": "Widget",
        "metadata": {
            "name": "foo",
            "namespace": "default",
            "uid": "8f4b1c2e-0000-4000-8000-000000000001",
            "resourceVersion": "42",
            "generation": 3,
        },
        "spec": {"replicas": 2, "image": "nginx:1.25"},
        "status": {"phase": "Pending", "observedGeneration": 2},
    }


@pytest.fixture
def sample_descendant():
    """Sample child resource produced by a handler."""
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": "foo-config", "namespace": "default"},
        "data": {"image": "nginx:1.25"},
    }


@pytest.fixture
def ctx(connection, sample_subject):
    """Fresh context for an update of the sample subject."""
    return ActionContext.new(
        action=Action.UPDATE,
        connection=connection,
        subject=sample_subject,
        operator="widget-operator",
        handler="WidgetHandler",
    )


@pytest.fixture
def mock_client():
    """Cluster client double."""
    client = MagicMock()
    client.apply = AsyncMock(return_value={"applied": True})
    client.apply_status = AsyncMock(return_value={"status": "patched"})
    client.create_event = AsyncMock(
        return_value={"metadata": {"name": "foo.17a2b", "namespace": "default"}}
    )
    client.patch_event = AsyncMock(return_value={})
    return client


@pytest.fixture
def mock_recorder():
    """Event recorder double."""
    recorder = MagicMock()
    recorder.emit = AsyncMock(return_value=True)
    return recorder

"""Pytest fixtures for quota webhook testing.

Root conftest providing:
- Default settings isolated from the local environment
- Quota ceilings used across the suite
- In-memory collaborators and a handler wired to them (no cluster required)
"""

import pytest

from quota_webhook.admission import AdmissionHandler
from quota_webhook.aggregator import UsageAggregator
from quota_webhook.config import Settings, get_settings
from quota_webhook.models import QuotaConfiguration
from quota_webhook.quantity import Quantity, ResourceName

from tests.factories import GROUP_LABEL, FakePodStore, FakeQuotaSource


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Settings are cached per process; start each test from a clean cache."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    """Default settings, ignoring any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def quota():
    """Ceilings of 500m CPU and 500Mi memory."""
    return QuotaConfiguration(
        cpu_limit=Quantity.parse("500m", ResourceName.CPU),
        memory_limit=Quantity.parse("500Mi", ResourceName.MEMORY),
    )


@pytest.fixture
def pod_store():
    """Empty in-memory pod store."""
    return FakePodStore()


@pytest.fixture
def quota_source():
    """Quota source serving 500m CPU / 500Mi memory."""
    return FakeQuotaSource({"limitCPU": "500m", "limitMemory": "500Mi"})


@pytest.fixture
def handler(quota_source, pod_store):
    """Admission handler wired to the in-memory fakes."""
    return AdmissionHandler(
        quota_source=quota_source,
        aggregator=UsageAggregator(pod_store),
        group_label_key=GROUP_LABEL,
    )

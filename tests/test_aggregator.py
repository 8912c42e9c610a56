"""Tests for group usage aggregation."""

import asyncio

import pytest

from quota_webhook.aggregator import UsageAggregator, label_selector, sum_limits
from quota_webhook.errors import QueryError
from quota_webhook.quantity import Quantity, ResourceName

from tests.factories import GROUP_LABEL, FakePodStore, container, pod, sized_container


def cpu(text):
    return Quantity.parse(text, ResourceName.CPU)


def mem(text):
    return Quantity.parse(text, ResourceName.MEMORY)


class TestSumLimits:
    """Test summing limits over pod objects."""

    def test_empty_group_is_zero(self):
        """Test an empty pod set yields zero CPU and memory."""
        usage = sum_limits([], "team-a", GROUP_LABEL, "vc-1")
        assert usage.cpu == Quantity.zero(ResourceName.CPU)
        assert usage.memory == Quantity.zero(ResourceName.MEMORY)
        assert usage.pod_count == 0

    def test_sums_all_containers(self):
        """Test limits of every container of every pod are added."""
        pods = [
            pod([sized_container("a", "100m", "64Mi"), sized_container("b", "150m", "64Mi")], group="vc-1"),
            pod([sized_container("c", "1", "1Gi")], group="vc-1", name="web-1"),
        ]
        usage = sum_limits(pods, "team-a", GROUP_LABEL, "vc-1")
        assert usage.cpu == cpu("1250m")
        assert usage.memory == mem("1152Mi")
        assert usage.pod_count == 2

    def test_containers_without_limits_contribute_zero(self):
        """Test limits are never inferred from requests."""
        pods = [pod([container("a", requests={"cpu": "2", "memory": "2Gi"}), sized_container("b", "100m", "1Mi")])]
        usage = sum_limits(pods, "team-a", GROUP_LABEL, "vc-1")
        assert usage.cpu == cpu("100m")
        assert usage.memory == mem("1Mi")

    def test_numeric_limits(self):
        """Test stored pods with unquoted numeric limits are summed."""
        pods = [pod([container("a", limits={"cpu": 0.5, "memory": 1048576}, requests={"cpu": 0.1})])]
        usage = sum_limits(pods, "team-a", GROUP_LABEL, "vc-1")
        assert usage.cpu == cpu("500m")
        assert usage.memory == mem("1Mi")

    def test_unreadable_pod(self):
        """Test malformed stored pods raise ValueError."""
        with pytest.raises(ValueError):
            sum_limits([{"spec": {"containers": "nope"}}], "team-a", GROUP_LABEL, "vc-1")


class TestUsageAggregator:
    """Test aggregation through a pod store."""

    def test_label_selector(self):
        """Test selectors use exact key=value matching."""
        assert label_selector(GROUP_LABEL, "vc-1") == "vcluster.loft.sh/managed-by=vc-1"

    @pytest.mark.asyncio
    async def test_queries_group(self):
        """Test only the group's pods in the namespace are summed."""
        store = FakePodStore([
            pod([sized_container(cpu="100m")], group="vc-1"),
            pod([sized_container(cpu="200m")], group="vc-2", name="other"),
            pod([sized_container(cpu="300m")], group="vc-1", namespace="team-b", name="elsewhere"),
        ])
        usage = await UsageAggregator(store).aggregate("team-a", GROUP_LABEL, "vc-1")
        assert store.calls == [("team-a", f"{GROUP_LABEL}=vc-1")]
        assert usage.cpu == cpu("100m")
        assert usage.pod_count == 1
        assert usage.label_value == "vc-1"

    @pytest.mark.asyncio
    async def test_empty_group(self):
        """Test an empty group aggregates to zero."""
        usage = await UsageAggregator(FakePodStore()).aggregate("team-a", GROUP_LABEL, "vc-1")
        assert usage.cpu.amount == 0
        assert usage.memory.amount == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [ConnectionError("connection refused"), asyncio.TimeoutError()])
    async def test_store_failure_fails_closed(self, error):
        """Test pod store failures surface as QueryError."""
        store = FakePodStore(error=error)
        with pytest.raises(QueryError) as exc_info:
            await UsageAggregator(store).aggregate("team-a", GROUP_LABEL, "vc-1")
        assert exc_info.value.message.startswith("pod query failed:")

    @pytest.mark.asyncio
    async def test_unreadable_stored_pod(self):
        """Test unreadable stored pods surface as QueryError."""
        bad = pod([container("app", limits={"cpu": "lots"}, requests={"cpu": "1"})], group="vc-1")
        with pytest.raises(QueryError):
            await UsageAggregator(FakePodStore([bad])).aggregate("team-a", GROUP_LABEL, "vc-1")

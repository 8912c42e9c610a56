"""
Usage Aggregator
================
Sums the container limits of every pod currently in a quota group.

Usage is recomputed from the live pod list on every review; nothing is
cached between requests.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Protocol

from loguru import logger

from quota_webhook.errors import QueryError
from quota_webhook.models import GroupUsage, parse_containers
from quota_webhook.quantity import ResourceName


class PodStore(Protocol):
    """Anything that can list pods by label selector (see KubernetesClient)."""

    async def list_pods(self, namespace: str, label_selector: str) -> list[dict[str, Any]]:
        ...


def label_selector(key: str, value: str) -> str:
    return f"{key}={value}"


def sum_limits(
    pods: Iterable[Mapping[str, Any]],
    namespace: str,
    label_key: str,
    label_value: str,
) -> GroupUsage:
    """Add up CPU and memory limits over the regular containers of ``pods``.

    Containers without limits contribute nothing; requests are never counted.

    Raises:
        ValueError: If a pod object is malformed or holds an invalid quantity
    """
    usage = GroupUsage.empty(namespace, label_key, label_value)
    cpu, memory = usage.cpu, usage.memory
    count = 0
    for pod in pods:
        count += 1
        for container in parse_containers(pod):
            if not container.limits:
                continue
            cpu += container.limit(ResourceName.CPU)
            memory += container.limit(ResourceName.MEMORY)
    return GroupUsage(
        namespace=namespace,
        label_key=label_key,
        label_value=label_value,
        cpu=cpu,
        memory=memory,
        pod_count=count,
    )


class UsageAggregator:
    """Computes GroupUsage from a pod store."""

    def __init__(self, pod_store: PodStore) -> None:
        self.pod_store = pod_store

    async def aggregate(self, namespace: str, label_key: str, label_value: str) -> GroupUsage:
        """Current usage of the group ``label_key=label_value`` in ``namespace``.

        Raises:
            QueryError: If the pods cannot be listed or parsed
        """
        selector = label_selector(label_key, label_value)
        try:
            pods = await self.pod_store.list_pods(namespace, selector)
        except Exception as e:
            detail = str(e) or type(e).__name__
            logger.error(f"Listing pods {selector} in {namespace} failed: {detail}")
            raise QueryError(f"could not list pods with {selector} in namespace {namespace}: {detail}") from e

        try:
            usage = sum_limits(pods, namespace, label_key, label_value)
        except ValueError as e:
            logger.error(f"Pod of group {selector} in {namespace} has unreadable resources: {e}")
            raise QueryError(f"could not read resources of pods with {selector}: {e}") from e

        logger.debug(
            f"Group {selector} in {namespace}: {usage.pod_count} pods, "
            f"cpu={usage.cpu}, memory={usage.memory}"
        )
        return usage

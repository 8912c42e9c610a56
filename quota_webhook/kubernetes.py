"""
Kubernetes Async Client
=======================
Read-only cluster collaborators used during admission: the quota
ConfigMap and the pod list of a quota group.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, TypeVar

from kubernetes_asyncio import client, config
from kubernetes_asyncio.client import ApiClient, CoreV1Api
from loguru import logger

from quota_webhook.config import Settings, get_settings
from quota_webhook.errors import ConfigurationError
from quota_webhook.models import QuotaConfiguration

T = TypeVar("T")


class KubernetesClient:
    """Async Kubernetes client wrapper with the lookups the webhook needs."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self._api_client: ApiClient | None = None
        self._core_v1: CoreV1Api | None = None

    async def __aenter__(self) -> "KubernetesClient":
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def connect(self) -> None:
        """Initialize the Kubernetes client.

        An explicit kubeconfig wins; otherwise the in-cluster service
        account is used, falling back to the default kubeconfig.
        """
        if self.settings.kubeconfig:
            await config.load_kube_config(
                config_file=str(self.settings.kubeconfig),
                context=self.settings.context,
            )
        else:
            try:
                config.load_incluster_config()
            except config.ConfigException:
                await config.load_kube_config(context=self.settings.context)
                logger.info("Not running in a cluster, using local kubeconfig")

        self._api_client = ApiClient()
        self._core_v1 = CoreV1Api(self._api_client)

    async def close(self) -> None:
        """Close the API client."""
        if self._api_client:
            await self._api_client.close()
            self._api_client = None
            self._core_v1 = None

    @property
    def core_v1(self) -> CoreV1Api:
        if not self._core_v1:
            raise RuntimeError("Client not connected. Use 'async with' or call connect()")
        return self._core_v1

    async def _with_timeout(self, call: Awaitable[T]) -> T:
        return await asyncio.wait_for(call, timeout=self.settings.request_timeout_seconds)

    # -------------------------
    # ConfigMap Operations
    # -------------------------
    async def read_config_map_data(self, name: str, namespace: str) -> dict[str, str] | None:
        """Get the data of a ConfigMap, or None when it does not exist."""
        try:
            cm = await self._with_timeout(
                self.core_v1.read_namespaced_config_map(name=name, namespace=namespace)
            )
        except client.ApiException as e:
            if e.status == 404:
                return None
            raise
        return dict(cm.data or {})

    # -------------------------
    # Pod Operations
    # -------------------------
    async def list_pods(self, namespace: str, label_selector: str) -> list[dict[str, Any]]:
        """List pods matching a label selector, in their JSON form."""
        result = await self._with_timeout(
            self.core_v1.list_namespaced_pod(namespace=namespace, label_selector=label_selector)
        )
        api_client = self._api_client
        return [api_client.sanitize_for_serialization(pod) for pod in result.items]


class ConfigMapQuotaSource:
    """Reads the quota ceilings from a ConfigMap on every call."""

    def __init__(self, k8s: KubernetesClient, settings: Settings | None = None) -> None:
        self.k8s = k8s
        self.settings = settings or k8s.settings

    async def load(self) -> QuotaConfiguration:
        """Load the current ceilings.

        Raises:
            ConfigurationError: If the ConfigMap cannot be read or holds invalid values
        """
        ref = self.settings.config_map_ref
        try:
            data = await self.k8s.read_config_map_data(
                self.settings.config_map_name,
                self.settings.config_map_namespace,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Timed out reading ConfigMap {ref}")
            raise ConfigurationError(f"timed out reading ConfigMap {ref}") from e
        except Exception as e:
            logger.error(f"Failed to read ConfigMap {ref}: {e}")
            raise ConfigurationError(f"could not read ConfigMap {ref}: {e}") from e

        if data is None:
            raise ConfigurationError(f"ConfigMap {ref} not found")
        try:
            return QuotaConfiguration.from_config_map(data)
        except ConfigurationError as e:
            raise ConfigurationError(f"ConfigMap {ref}: {e.detail}") from e


@asynccontextmanager
async def kubernetes_client(
    settings: Settings | None = None,
) -> AsyncGenerator[KubernetesClient, None]:
    """Context manager for Kubernetes client."""
    k8s = KubernetesClient(settings)
    try:
        await k8s.connect()
        yield k8s
    finally:
        await k8s.close()

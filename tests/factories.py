"""Builders and in-memory fakes shared by the test suite."""

import json
import uuid
from typing import Any, Dict, List, Optional

from quota_webhook.errors import ConfigurationError
from quota_webhook.models import QuotaConfiguration

GROUP_LABEL = "vcluster.loft.sh/managed-by"


# =============================================================================
# Builders
# =============================================================================

def container(
    name: str = "app",
    limits: Optional[Dict[str, str]] = None,
    requests: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Container JSON with optional limits/requests."""
    resources: Dict[str, Any] = {}
    if limits is not None:
        resources["limits"] = limits
    if requests is not None:
        resources["requests"] = requests
    return {"name": name, "image": "nginx:1.25", "resources": resources}


def sized_container(name: str = "app", cpu: str = "400m", memory: str = "400Mi") -> Dict[str, Any]:
    """Container declaring the given limits and small requests."""
    return container(
        name,
        limits={"cpu": cpu, "memory": memory},
        requests={"cpu": "100m", "memory": "100Mi"},
    )


def pod(
    containers: List[Dict[str, Any]],
    group: Optional[str] = None,
    namespace: str = "team-a",
    name: str = "web-0",
) -> Dict[str, Any]:
    """Pod JSON, labelled with the grouping label when ``group`` is set."""
    labels = {"app": "web"}
    if group is not None:
        labels[GROUP_LABEL] = group
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {"name": name, "namespace": namespace, "labels": labels},
        "spec": {"containers": containers},
    }


def review(
    obj: Any,
    uid: Optional[str] = None,
    resource: str = "pods",
    operation: str = "CREATE",
    namespace: str = "team-a",
) -> Dict[str, Any]:
    """AdmissionReview request envelope around ``obj``."""
    return {
        "apiVersion": "admission.k8s.io/v1",
        "kind": "AdmissionReview",
        "request": {
            "uid": uid or str(uuid.uuid4()),
            "kind": {"group": "", "version": "v1", "kind": "Pod"},
            "resource": {"group": "", "version": "v1", "resource": resource},
            "namespace": namespace,
            "operation": operation,
            "object": obj,
        },
    }


def body(envelope: Dict[str, Any]) -> bytes:
    return json.dumps(envelope).encode()


# =============================================================================
# Fakes
# =============================================================================

class FakePodStore:
    """Pod store returning canned pods and recording every query."""

    def __init__(self, pods: Optional[List[Dict[str, Any]]] = None, error: Optional[Exception] = None):
        self.pods = list(pods or [])
        self.error = error
        self.calls: List[tuple] = []

    async def list_pods(self, namespace: str, label_selector: str) -> List[Dict[str, Any]]:
        self.calls.append((namespace, label_selector))
        if self.error is not None:
            raise self.error
        key, _, value = label_selector.partition("=")
        return [
            p for p in self.pods
            if p["metadata"].get("namespace") == namespace
            and p["metadata"].get("labels", {}).get(key) == value
        ]


class FakeQuotaSource:
    """Quota source backed by ConfigMap-style data."""

    def __init__(self, data: Optional[Dict[str, str]] = None, error: Optional[Exception] = None):
        self.data = data
        self.error = error
        self.loads = 0

    async def load(self) -> QuotaConfiguration:
        self.loads += 1
        if self.error is not None:
            raise self.error
        if self.data is None:
            raise ConfigurationError("ConfigMap default/vcluster-resource-quota-controller-config not found")
        return QuotaConfiguration.from_config_map(self.data)



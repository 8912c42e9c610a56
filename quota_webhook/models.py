"""
Admission Models
================
Request-scoped domain values and the ``admission.k8s.io`` wire envelope.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from quota_webhook.errors import AdmissionError, ConfigurationError, QuantityError
from quota_webhook.quantity import Quantity, ResourceName

ADMISSION_API_VERSION = "admission.k8s.io/v1"
ADMISSION_KIND = "AdmissionReview"

CONFIG_KEY_CPU = "limitCPU"
CONFIG_KEY_MEMORY = "limitMemory"


# -------------------------
# Domain Values
# -------------------------
ResourceMap = Dict[ResourceName, Quantity]


@dataclass(frozen=True)
class ContainerResources:
    """Declared resources of one container.

    Attributes:
        name: Container name
        limits: CPU/memory limits, or None when the container declares no limits
        requests: CPU/memory requests, or None when the container declares no requests
    """

    name: str
    limits: Optional[ResourceMap] = None
    requests: Optional[ResourceMap] = None

    def limit(self, resource: ResourceName) -> Quantity:
        """Declared limit for a resource; zero when unset."""
        if not self.limits:
            return Quantity.zero(resource)
        return self.limits.get(resource, Quantity.zero(resource))


@dataclass(frozen=True)
class PodAdmissionRequest:
    """The candidate pod of one admission review."""

    uid: str
    namespace: str
    name: str = ""
    group: Optional[str] = None
    containers: List[ContainerResources] = field(default_factory=list)

    @property
    def grouped(self) -> bool:
        return self.group is not None


@dataclass(frozen=True)
class GroupUsage:
    """Summed container limits of every pod currently in a quota group."""

    namespace: str
    label_key: str
    label_value: str
    cpu: Quantity
    memory: Quantity
    pod_count: int = 0

    @classmethod
    def empty(cls, namespace: str, label_key: str, label_value: str) -> "GroupUsage":
        return cls(
            namespace=namespace,
            label_key=label_key,
            label_value=label_value,
            cpu=Quantity.zero(ResourceName.CPU),
            memory=Quantity.zero(ResourceName.MEMORY),
        )


@dataclass(frozen=True)
class QuotaConfiguration:
    """CPU and memory ceilings applied to every quota group."""

    cpu_limit: Quantity
    memory_limit: Quantity

    def ceiling(self, resource: ResourceName) -> Quantity:
        return self.cpu_limit if resource is ResourceName.CPU else self.memory_limit

    @classmethod
    def from_config_map(cls, data: Optional[Mapping[str, str]]) -> "QuotaConfiguration":
        """Build the ceilings from ConfigMap data (``limitCPU`` / ``limitMemory``).

        Raises:
            ConfigurationError: If a field is missing, empty or not a valid quantity
        """
        data = data or {}
        values = {}
        for key, resource in ((CONFIG_KEY_CPU, ResourceName.CPU), (CONFIG_KEY_MEMORY, ResourceName.MEMORY)):
            raw = data.get(key)
            if raw is None or not str(raw).strip():
                raise ConfigurationError(f"field {key!r} is missing or empty")
            try:
                values[resource] = Quantity.parse(raw, resource)
            except QuantityError as e:
                raise ConfigurationError(f"field {key!r}: {e}") from e
        return cls(cpu_limit=values[ResourceName.CPU], memory_limit=values[ResourceName.MEMORY])


@dataclass(frozen=True)
class AdmissionVerdict:
    """Outcome of one admission review, echoing the request uid."""

    uid: str
    allowed: bool
    message: Optional[str] = None
    reason: Optional[str] = None
    code: Optional[int] = None
    api_version: str = ADMISSION_API_VERSION

    @classmethod
    def allow(cls, uid: str, api_version: str = ADMISSION_API_VERSION) -> "AdmissionVerdict":
        return cls(uid=uid, allowed=True, api_version=api_version)

    @classmethod
    def deny(
        cls,
        uid: str,
        error: AdmissionError,
        api_version: str = ADMISSION_API_VERSION,
    ) -> "AdmissionVerdict":
        return cls(
            uid=uid,
            allowed=False,
            message=error.message,
            reason=error.reason,
            code=error.code,
            api_version=api_version,
        )

    def to_review(self) -> Dict[str, Any]:
        """Encode as an AdmissionReview response envelope."""
        status = None
        if not self.allowed:
            status = AdmissionStatus(code=self.code, reason=self.reason, message=self.message)
        review = AdmissionReviewResponse(
            api_version=self.api_version,
            response=AdmissionResponse(uid=self.uid, allowed=self.allowed, status=status),
        )
        return review.model_dump(by_alias=True, exclude_none=True)


# -------------------------
# Pod Object Parsing
# -------------------------
def _resource_map(raw: Any, container: str, field_name: str) -> Optional[ResourceMap]:
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        raise ValueError(f"container {container!r}: resources.{field_name} must be a mapping")
    if not raw:
        return None
    parsed: ResourceMap = {}
    for resource in ResourceName:
        if resource.value in raw:
            try:
                parsed[resource] = Quantity.parse(raw[resource.value], resource)
            except QuantityError as e:
                raise ValueError(f"container {container!r}: resources.{field_name}.{resource.value}: {e}") from e
    return parsed


def parse_containers(pod: Any) -> List[ContainerResources]:
    """Extract the declared resources of a pod's regular containers.

    Args:
        pod: Pod object in its JSON form (``metadata``/``spec`` mappings)

    Raises:
        ValueError: If the object is not shaped like a pod or a quantity is invalid
    """
    if not isinstance(pod, Mapping):
        raise ValueError("pod object must be a JSON object")
    spec = pod.get("spec") or {}
    if not isinstance(spec, Mapping):
        raise ValueError("pod spec must be a JSON object")
    containers = spec.get("containers") or []
    if not isinstance(containers, list):
        raise ValueError("pod spec.containers must be a list")

    result = []
    for index, container in enumerate(containers):
        if not isinstance(container, Mapping):
            raise ValueError(f"spec.containers[{index}] must be a JSON object")
        name = str(container.get("name") or f"container-{index}")
        resources = container.get("resources")
        if resources is None:
            resources = {}
        if not isinstance(resources, Mapping):
            raise ValueError(f"container {name!r}: resources must be a mapping")
        result.append(
            ContainerResources(
                name=name,
                limits=_resource_map(resources.get("limits"), name, "limits"),
                requests=_resource_map(resources.get("requests"), name, "requests"),
            )
        )
    return result


def pod_labels(pod: Mapping[str, Any]) -> Dict[str, str]:
    metadata = pod.get("metadata") or {}
    if not isinstance(metadata, Mapping):
        raise ValueError("pod metadata must be a JSON object")
    labels = metadata.get("labels") or {}
    if not isinstance(labels, Mapping):
        raise ValueError("pod metadata.labels must be a mapping")
    return dict(labels)


# -------------------------
# Wire Envelope
# -------------------------
class GroupVersionResource(BaseModel):
    group: str = ""
    version: str = ""
    resource: str = ""


class AdmissionRequest(BaseModel):
    """The ``request`` section of an AdmissionReview."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    uid: str
    resource: GroupVersionResource
    sub_resource: Optional[str] = Field(default=None, alias="subResource")
    name: Optional[str] = None
    namespace: Optional[str] = None
    operation: str = "CREATE"
    pod_object: Any = Field(default=None, alias="object")

    def is_pod_create(self) -> bool:
        """True for pod creations in the core API group (no sub-resource)."""
        return (
            self.resource.group == ""
            and self.resource.resource == "pods"
            and not self.sub_resource
            and self.operation == "CREATE"
        )


class AdmissionReview(BaseModel):
    """Inbound AdmissionReview envelope."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    api_version: str = Field(default=ADMISSION_API_VERSION, alias="apiVersion")
    kind: str = ADMISSION_KIND
    request: AdmissionRequest


class AdmissionStatus(BaseModel):
    code: Optional[int] = None
    reason: Optional[str] = None
    message: Optional[str] = None


class AdmissionResponse(BaseModel):
    uid: str
    allowed: bool
    status: Optional[AdmissionStatus] = None


class AdmissionReviewResponse(BaseModel):
    """Outbound AdmissionReview envelope."""

    model_config = ConfigDict(populate_by_name=True)

    api_version: str = Field(default=ADMISSION_API_VERSION, alias="apiVersion")
    kind: str = ADMISSION_KIND
    response: AdmissionResponse

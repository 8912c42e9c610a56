"""
Quota Evaluator
===============
Pure accept/reject decision for a candidate pod against its group's usage.
"""

from __future__ import annotations

from typing import Iterable, Optional

from quota_webhook.errors import AdmissionError, PreconditionError, QuotaExceededError
from quota_webhook.models import (
    AdmissionVerdict,
    ContainerResources,
    GroupUsage,
    PodAdmissionRequest,
    QuotaConfiguration,
)
from quota_webhook.quantity import ResourceName

# Checked in this order after every container
CHECK_ORDER = (ResourceName.CPU, ResourceName.MEMORY)


def check_declarations(containers: Iterable[ContainerResources]) -> None:
    """Every container must declare both limits and requests."""
    for container in containers:
        missing = [
            name
            for name, declared in (("limits", container.limits), ("requests", container.requests))
            if declared is None
        ]
        if missing:
            fields = " and ".join(f"resources.{name}" for name in missing)
            raise PreconditionError(
                f"container {container.name!r} must specify both resource limits and requests "
                f"(missing {fields})"
            )


def check_quota(candidate: PodAdmissionRequest, usage: GroupUsage, quota: QuotaConfiguration) -> None:
    """Raise if admitting ``candidate`` would push its group over a ceiling.

    The candidate's limits are added container by container, in
    declaration order, and both ceilings are checked after each one, so
    the container that tips the total over is the one reported.

    Raises:
        PreconditionError: If a container lacks limits or requests
        QuotaExceededError: If a ceiling would be exceeded
    """
    check_declarations(candidate.containers)

    totals = {ResourceName.CPU: usage.cpu, ResourceName.MEMORY: usage.memory}
    for container in candidate.containers:
        for resource in CHECK_ORDER:
            totals[resource] = totals[resource] + container.limit(resource)

        for resource in CHECK_ORDER:
            ceiling = quota.ceiling(resource)
            if totals[resource] > ceiling:
                raise QuotaExceededError(
                    resource,
                    f"{resource.display_name} limit exceeded: container {container.name!r} "
                    f"brings group {usage.label_value!r} to {totals[resource]}, "
                    f"ceiling is {ceiling}",
                )


def evaluate(
    candidate: PodAdmissionRequest,
    usage: Optional[GroupUsage],
    quota: Optional[QuotaConfiguration],
) -> AdmissionVerdict:
    """Decide whether ``candidate`` may be admitted.

    Ungrouped pods are always allowed; ``usage`` and ``quota`` are only
    consulted for grouped pods.
    """
    if not candidate.grouped:
        return AdmissionVerdict.allow(candidate.uid)
    if usage is None or quota is None:
        raise ValueError("grouped pods need the group usage and quota configuration")

    try:
        check_quota(candidate, usage, quota)
    except AdmissionError as e:
        return AdmissionVerdict.deny(candidate.uid, e)
    return AdmissionVerdict.allow(candidate.uid)

"""
Group Resource Quota Webhook.

A validating admission webhook that caps the summed CPU and memory
limits of all pods sharing a grouping label value within a namespace.
"""

__version__ = "1.0.0"

from quota_webhook.admission import AdmissionHandler
from quota_webhook.aggregator import UsageAggregator
from quota_webhook.evaluator import evaluate
from quota_webhook.models import (
    AdmissionVerdict,
    ContainerResources,
    GroupUsage,
    PodAdmissionRequest,
    QuotaConfiguration,
)
from quota_webhook.quantity import Quantity, ResourceName

__all__ = [
    "AdmissionHandler",
    "UsageAggregator",
    "evaluate",
    "AdmissionVerdict",
    "ContainerResources",
    "GroupUsage",
    "PodAdmissionRequest",
    "QuotaConfiguration",
    "Quantity",
    "ResourceName",
]

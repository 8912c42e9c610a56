"""
Admission Protocol Adapter
==========================
Turns an AdmissionReview request body into a verdict.

Pipeline per request: decode -> filter by kind -> extract pod ->
(allow if ungrouped) -> load quota -> aggregate group usage -> evaluate.
Every failure short-circuits into a rejection, so the API server always
receives a well-formed response.
"""

from __future__ import annotations

import dataclasses
import json
from typing import Any, Dict, Protocol

from loguru import logger
from pydantic import ValidationError

from quota_webhook.aggregator import UsageAggregator
from quota_webhook.errors import (
    AdmissionError,
    ConfigurationError,
    DecodeError,
    InternalError,
)
from quota_webhook.evaluator import evaluate
from quota_webhook.logging_config import LogContext, log_review
from quota_webhook.models import (
    AdmissionRequest,
    AdmissionReview,
    AdmissionVerdict,
    PodAdmissionRequest,
    QuotaConfiguration,
    parse_containers,
    pod_labels,
)


class QuotaSource(Protocol):
    """Anything that can load the current ceilings (see ConfigMapQuotaSource)."""

    async def load(self) -> QuotaConfiguration:
        ...


def _summarize_validation(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}"
        for err in error.errors()
    )


def decode_review(body: bytes | str) -> AdmissionReview:
    """Parse an AdmissionReview request body.

    Raises:
        DecodeError: If the body is not JSON or not an AdmissionReview
    """
    try:
        payload = json.loads(body)
    except (ValueError, RecursionError) as e:
        raise DecodeError(f"could not unmarshal request: {e}") from e
    if not isinstance(payload, dict):
        raise DecodeError("could not unmarshal request: admission review must be a JSON object")
    try:
        return AdmissionReview.model_validate(payload)
    except ValidationError as e:
        raise DecodeError(f"invalid admission review: {_summarize_validation(e)}") from e


def salvage_uid(body: bytes | str) -> str:
    """Best-effort request uid from a body that failed to decode."""
    try:
        payload = json.loads(body)
    except (ValueError, RecursionError):
        return ""
    if not isinstance(payload, dict):
        return ""
    request = payload.get("request")
    if isinstance(request, dict) and isinstance(request.get("uid"), str):
        return request["uid"]
    return ""


def extract_candidate(request: AdmissionRequest, label_key: str) -> PodAdmissionRequest:
    """Build the candidate pod from the request's object.

    Raises:
        DecodeError: If the object is not a readable pod
    """
    pod = request.pod_object
    try:
        containers = parse_containers(pod)
        labels = pod_labels(pod)
    except ValueError as e:
        raise DecodeError(f"could not unmarshal pod object: {e}") from e

    metadata = pod.get("metadata") or {}
    namespace = request.namespace or metadata.get("namespace") or ""
    name = request.name or metadata.get("name") or metadata.get("generateName") or ""
    group = labels.get(label_key)

    if group is not None and not isinstance(group, str):
        raise DecodeError(f"pod label {label_key!r} must be a string, got {type(group).__name__}")
    if group is not None and not namespace:
        raise DecodeError("could not determine the namespace of the pod")

    return PodAdmissionRequest(
        uid=request.uid,
        namespace=namespace,
        name=str(name),
        group=group,
        containers=containers,
    )


class AdmissionHandler:
    """Stateless admission decision pipeline with injected collaborators."""

    def __init__(
        self,
        quota_source: QuotaSource,
        aggregator: UsageAggregator,
        group_label_key: str,
    ) -> None:
        self.quota_source = quota_source
        self.aggregator = aggregator
        self.group_label_key = group_label_key

    async def review(self, body: bytes | str) -> Dict[str, Any]:
        """Decide on a request body and return the AdmissionReview response."""
        verdict = await self.handle(body)
        return verdict.to_review()

    async def handle(self, body: bytes | str) -> AdmissionVerdict:
        """Decide on a request body. Never raises."""
        try:
            review = decode_review(body)
        except DecodeError as e:
            uid = salvage_uid(body)
            logger.warning(f"Rejecting admission review {uid or '<unknown uid>'}: {e.message}")
            return AdmissionVerdict.deny(uid, e)
        except Exception as e:
            uid = salvage_uid(body)
            logger.exception(f"Unexpected error decoding admission review {uid or '<unknown uid>'}")
            return AdmissionVerdict.deny(uid, InternalError(str(e) or type(e).__name__, e))

        request = review.request
        with LogContext(uid=request.uid):
            try:
                verdict = await self._admit(request)
            except AdmissionError as e:
                verdict = AdmissionVerdict.deny(request.uid, e)
            except Exception as e:
                logger.exception(f"Unexpected error during admission review {request.uid}")
                verdict = AdmissionVerdict.deny(
                    request.uid, InternalError(str(e) or type(e).__name__, e)
                )

            if not verdict.allowed:
                logger.warning(f"Denied {request.uid}: {verdict.message}")

        return dataclasses.replace(verdict, api_version=review.api_version)

    async def _admit(self, request: AdmissionRequest) -> AdmissionVerdict:
        if not request.is_pod_create():
            logger.debug(
                f"Allowing {request.operation} on {request.resource.resource} without inspection"
            )
            return AdmissionVerdict.allow(request.uid)

        candidate = extract_candidate(request, self.group_label_key)
        with log_review(candidate.uid, candidate.namespace, candidate.group, pod=candidate.name):
            if not candidate.grouped:
                logger.debug(f"Pod has no {self.group_label_key} label, allowing")
                return AdmissionVerdict.allow(candidate.uid)

            quota = await self._load_quota()
            usage = await self.aggregator.aggregate(
                candidate.namespace, self.group_label_key, candidate.group
            )
            verdict = evaluate(candidate, usage, quota)
            if verdict.allowed:
                logger.info(
                    f"Allowed pod in group {candidate.group!r} "
                    f"(usage cpu={usage.cpu}/{quota.cpu_limit}, memory={usage.memory}/{quota.memory_limit})"
                )
            return verdict

    async def _load_quota(self) -> QuotaConfiguration:
        try:
            return await self.quota_source.load()
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Loading quota configuration failed: {e}")
            raise ConfigurationError(str(e) or type(e).__name__) from e

"""Quota Webhook Server - FastAPI Application

Serves the validating admission webhook:
- POST /validate: AdmissionReview in, AdmissionReview out
- GET /health: liveness probe
- GET /metrics: Prometheus metrics
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

from quota_webhook.admission import AdmissionHandler
from quota_webhook.aggregator import UsageAggregator
from quota_webhook.config import Settings, get_settings
from quota_webhook.kubernetes import ConfigMapQuotaSource, KubernetesClient, kubernetes_client


# =============================================================================
# Prometheus Metrics
# =============================================================================

ADMISSION_REVIEWS = Counter(
    "quota_webhook_admission_reviews_total",
    "Admission reviews by outcome",
    ["allowed", "reason"]
)
REVIEW_LATENCY = Histogram(
    "quota_webhook_review_latency_seconds",
    "Time spent deciding an admission review"
)


def build_handler(k8s: KubernetesClient, settings: Settings) -> AdmissionHandler:
    """Wire the admission handler to live cluster collaborators."""
    return AdmissionHandler(
        quota_source=ConfigMapQuotaSource(k8s, settings),
        aggregator=UsageAggregator(k8s),
        group_label_key=settings.group_label_key,
    )


def create_app(
    settings: Optional[Settings] = None,
    handler: Optional[AdmissionHandler] = None,
) -> FastAPI:
    """Create the webhook application.

    Args:
        settings: Webhook settings (defaults to environment settings)
        handler: Pre-built admission handler; when omitted one is wired to
            the cluster during application startup
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifecycle management."""
        if handler is not None:
            app.state.handler = handler
            yield
            return

        async with kubernetes_client(settings) as k8s:
            app.state.handler = build_handler(k8s, settings)
            logger.info(
                f"Quota webhook ready: group label {settings.group_label_key}, "
                f"quota from ConfigMap {settings.config_map_ref}"
            )
            yield
        logger.info("Quota webhook stopped")

    app = FastAPI(
        title="Group Resource Quota Webhook",
        description="Validating admission webhook enforcing per-group CPU and memory quotas",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.post("/validate")
    async def validate(request: Request):
        """Validate a pod admission review."""
        body = await request.body()
        start = time.perf_counter()
        verdict = await request.app.state.handler.handle(body)
        REVIEW_LATENCY.observe(time.perf_counter() - start)
        ADMISSION_REVIEWS.labels(
            allowed=str(verdict.allowed).lower(),
            reason=verdict.reason or "Allowed",
        ).inc()
        return JSONResponse(verdict.to_review())

    return app

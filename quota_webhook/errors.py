"""Error taxonomy for quantity parsing and admission decisions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from quota_webhook.quantity import ResourceName


# -------------------------
# Quantity Errors
# -------------------------
class QuantityError(ValueError):
    """Base class for resource quantity failures."""


class QuantityParseError(QuantityError):
    """Raised when a quantity string does not follow the Kubernetes syntax."""

    def __init__(self, text: str, detail: str) -> None:
        self.text = text
        self.detail = detail
        super().__init__(f"invalid quantity {text!r}: {detail}")


class QuantityDimensionError(QuantityError):
    """Raised when quantities of different resources are combined."""


# -------------------------
# Admission Errors
# -------------------------
class AdmissionError(Exception):
    """Base class for every reason a pod can be rejected.

    Each subclass carries a message prefix so operators can tell the
    failure kinds apart in audit logs, a machine-readable reason and
    the status code reported back to the API server.
    """

    prefix = "admission denied:"
    reason = "Forbidden"
    code = 403

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)

    @property
    def message(self) -> str:
        return f"{self.prefix} {self.detail}"


class DecodeError(AdmissionError):
    """The admission review envelope or the pod object could not be parsed."""

    prefix = "malformed request:"
    reason = "MalformedRequest"
    code = 400


class ConfigurationError(AdmissionError):
    """The quota configuration is missing, unreadable or invalid."""

    prefix = "configuration unavailable:"
    reason = "ConfigurationUnavailable"


class QueryError(AdmissionError):
    """Listing the pods of a quota group failed."""

    prefix = "pod query failed:"
    reason = "PodQueryFailed"


class PreconditionError(AdmissionError):
    """A container of a grouped pod does not declare limits and requests."""

    prefix = "missing resource declarations:"
    reason = "MissingResourceDeclarations"


class QuotaExceededError(AdmissionError):
    """Admitting the pod would push the group above a ceiling."""

    prefix = "quota exceeded:"
    reason = "QuotaExceeded"

    def __init__(self, resource: "ResourceName", detail: str) -> None:
        self.resource = resource
        super().__init__(detail)


class InternalError(AdmissionError):
    """Unexpected failure inside the webhook; the pod is rejected."""

    prefix = "internal error:"
    reason = "InternalError"
    code = 500

    def __init__(self, detail: str, cause: Optional[BaseException] = None) -> None:
        self.cause = cause
        super().__init__(detail)

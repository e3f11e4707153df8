"""
Error Taxonomy

Every failure that can end up on a job row carries a stable ``code``.
Contention and stale claims are not errors and have no class here.
"""

from __future__ import annotations


class ClaimRiskError(Exception):
    """Base class for engine errors."""

    code = "UNKNOWN"
    retryable = True

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class CatalogError(ClaimRiskError):
    """Configuration data is missing or malformed."""

    code = "CATALOG_INVALID"
    retryable = False


class ProviderError(ClaimRiskError):
    """The text-generation service failed in a non-transient way."""

    code = "PROVIDER_ERROR"


class TransientProviderError(ProviderError):
    """Timeout or network-level failure that survived call-site retries."""

    code = "PROVIDER_TRANSIENT"


class CircuitOpenError(ProviderError):
    """Raised when the provider circuit breaker is open."""

    code = "PROVIDER_CIRCUIT_OPEN"


class ReportValidationError(ClaimRiskError):
    """The generated report failed validation twice."""

    code = "REPORT_VALIDATION_FAILED"
    retryable = False

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("Report validation failed: " + "; ".join(self.errors))


class JobNotFound(ClaimRiskError):
    code = "JOB_NOT_FOUND"
    retryable = False


class JobTokenMismatch(ClaimRiskError):
    code = "JOB_TOKEN_MISMATCH"
    retryable = False

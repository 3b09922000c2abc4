"""Error hierarchy for the exporter.

Error layers:
- KiaeError: Base class for all exporter errors
- DomainError: Rule violations on domain values (malformed image references)
- InfrastructureError: Registry, cluster, and configuration failures

Registry errors never leave the probe: they are classified into an
AvailabilityMode there. ConfigurationError is only raised at startup.
"""


class KiaeError(Exception):
    """Base class for all exporter errors."""

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        super().__init__(message)


# =============================================================================
# Domain Errors
# =============================================================================


class DomainError(KiaeError):
    """Base class for domain errors."""


class BadImageNameError(DomainError):
    """Image reference does not follow the distribution reference grammar."""

    def __init__(self, reference: str, reason: str) -> None:
        super().__init__(f"could not parse reference {reference!r}: {reason}", code="BAD_IMAGE_NAME")
        self.reference = reference
        self.reason = reason


# =============================================================================
# Infrastructure Errors
# =============================================================================


class InfrastructureError(KiaeError):
    """Base class for infrastructure/system errors."""


class RegistryError(InfrastructureError):
    """Registry answered a manifest query with an error status.

    Carries the HTTP status and the distribution API error codes parsed from
    the response body (empty for HEAD requests, which have no body).
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_codes: tuple[str, ...] = (),
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_codes = error_codes


class LegacyManifestError(InfrastructureError):
    """Registry served a schema-1 manifest that modern clients refuse to read."""

    def __init__(self, media_type: str) -> None:
        super().__init__(f"unsupported legacy manifest media type {media_type!r}")
        self.media_type = media_type


class ClusterSourceError(InfrastructureError):
    """Listing workloads or identity objects from the cluster failed."""


class ConfigurationError(InfrastructureError):
    """System misconfiguration detected."""

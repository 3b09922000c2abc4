"""Classification of registry errors into availability modes."""

from kiae.domain.image.model.value import AvailabilityMode
from kiae.domain.shared.error import BadImageNameError, LegacyManifestError, RegistryError

_ABSENT_CODES = frozenset({"MANIFEST_UNKNOWN", "NAME_UNKNOWN"})


def is_absent(error: BaseException) -> bool:
    return isinstance(error, RegistryError) and (
        error.status_code == 404 or bool(_ABSENT_CODES.intersection(error.error_codes))
    )


def is_authn_failure(error: BaseException) -> bool:
    return isinstance(error, RegistryError) and (
        error.status_code == 401 or "UNAUTHORIZED" in error.error_codes
    )


def is_authz_failure(error: BaseException) -> bool:
    return isinstance(error, RegistryError) and (
        error.status_code == 403 or "DENIED" in error.error_codes
    )


def is_legacy_registry(error: BaseException) -> bool:
    """Old registries serve schema-1 manifests; the manifest exists, which is all we check.

    This is a leniency, not a guarantee that a modern runtime can pull it.
    """
    return isinstance(error, LegacyManifestError)


def classify(error: BaseException | None) -> AvailabilityMode:
    """Map the final error of a probe to an AvailabilityMode (first match wins)."""
    if error is None:
        return AvailabilityMode.AVAILABLE
    if isinstance(error, BadImageNameError):
        return AvailabilityMode.BAD_IMAGE_NAME
    if is_absent(error):
        return AvailabilityMode.ABSENT
    if is_authn_failure(error):
        return AvailabilityMode.AUTHN_FAILURE
    if is_authz_failure(error):
        return AvailabilityMode.AUTHZ_FAILURE
    if is_legacy_registry(error):
        return AvailabilityMode.AVAILABLE
    return AvailabilityMode.UNKNOWN_ERROR

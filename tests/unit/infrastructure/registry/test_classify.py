import httpx
import pytest

from kiae.domain.image.model.value import AvailabilityMode
from kiae.domain.shared.error import BadImageNameError, LegacyManifestError, RegistryError
from kiae.infrastructure.registry.errors import classify


class TestClassify:
    def test_no_error_is_available(self):
        assert classify(None) is AvailabilityMode.AVAILABLE

    @pytest.mark.parametrize(
        "error,expected",
        [
            (RegistryError("not found", status_code=404), AvailabilityMode.ABSENT),
            (
                RegistryError("gone", status_code=400, error_codes=("MANIFEST_UNKNOWN",)),
                AvailabilityMode.ABSENT,
            ),
            (RegistryError("no repo", error_codes=("NAME_UNKNOWN",)), AvailabilityMode.ABSENT),
            (RegistryError("who", status_code=401), AvailabilityMode.AUTHN_FAILURE),
            (RegistryError("who", error_codes=("UNAUTHORIZED",)), AvailabilityMode.AUTHN_FAILURE),
            (RegistryError("no", status_code=403), AvailabilityMode.AUTHZ_FAILURE),
            (RegistryError("no", error_codes=("DENIED",)), AvailabilityMode.AUTHZ_FAILURE),
            (RegistryError("broken", status_code=500), AvailabilityMode.UNKNOWN_ERROR),
            (
                LegacyManifestError("application/vnd.docker.distribution.manifest.v1+prettyjws"),
                AvailabilityMode.AVAILABLE,
            ),
            (BadImageNameError("x y", "spaces"), AvailabilityMode.BAD_IMAGE_NAME),
            (httpx.ConnectError("refused"), AvailabilityMode.UNKNOWN_ERROR),
            (TimeoutError("slow"), AvailabilityMode.UNKNOWN_ERROR),
        ],
    )
    def test_classification(self, error, expected):
        assert classify(error) is expected

    def test_absent_takes_priority_over_auth(self):
        error = RegistryError("odd", status_code=401, error_codes=("MANIFEST_UNKNOWN",))
        assert classify(error) is AvailabilityMode.ABSENT

    def test_authn_takes_priority_over_authz(self):
        error = RegistryError("odd", status_code=403, error_codes=("UNAUTHORIZED",))
        assert classify(error) is AvailabilityMode.AUTHN_FAILURE

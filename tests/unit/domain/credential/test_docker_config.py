import base64
import json

import pytest

from kiae.domain.credential.model.credential import (
    Keychain,
    RegistryCredential,
    normalize_registry,
    parse_docker_config,
)


def b64(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


class TestNormalizeRegistry:
    @pytest.mark.parametrize(
        "key,expected",
        [
            ("https://index.docker.io/v1/", "index.docker.io"),
            ("docker.io", "index.docker.io"),
            ("registry-1.docker.io", "index.docker.io"),
            ("https://Registry.Example.com:5000/v2/", "registry.example.com:5000"),
            ("ghcr.io", "ghcr.io"),
        ],
    )
    def test_normalize(self, key, expected):
        assert normalize_registry(key) == expected


class TestParseDockerConfig:
    def test_auths_with_encoded_auth(self):
        keychain = parse_docker_config(
            {"auths": {"registry.example.com": {"auth": b64("robot:s3cret:with-colon")}}}
        )

        assert keychain.credentials == (
            RegistryCredential(
                registry="registry.example.com", username="robot", password="s3cret:with-colon"
            ),
        )

    def test_auths_with_username_password(self):
        keychain = parse_docker_config(
            json.dumps({"auths": {"https://index.docker.io/v1/": {"username": "u", "password": "p"}}})
        )

        [credential] = keychain.for_registry("docker.io")
        assert credential.username == "u"
        assert credential.password == "p"

    def test_identity_and_registry_tokens(self):
        keychain = parse_docker_config(
            {
                "auths": {
                    "a.example.com": {"identitytoken": "refresh"},
                    "b.example.com": {"registrytoken": "bearer"},
                }
            }
        )

        assert keychain.for_registry("a.example.com")[0].identity_token == "refresh"
        assert keychain.for_registry("b.example.com")[0].registry_token == "bearer"

    def test_legacy_dockercfg(self):
        keychain = parse_docker_config(
            json.dumps({"quay.io": {"auth": b64("user:pass"), "email": "x@example.com"}}).encode()
        )

        [credential] = keychain.credentials
        assert credential.registry == "quay.io"
        assert credential.has_basic

    def test_credential_helpers_are_skipped(self):
        keychain = parse_docker_config({"credsStore": "desktop", "credHelpers": {"gcr.io": "gcloud"}})
        assert keychain.empty

    def test_entries_without_credentials_are_skipped(self):
        keychain = parse_docker_config(
            {"auths": {"empty.example.com": {}, "bad.example.com": {"auth": "not-base64!"}}}
        )
        assert keychain.empty

    def test_rejects_non_object(self):
        with pytest.raises(ValueError):
            parse_docker_config("[]")

    def test_rejects_non_object_auths(self):
        with pytest.raises(ValueError, match="auths must be a JSON object"):
            parse_docker_config({"auths": ["registry.example.com"]})

    @pytest.mark.parametrize("field", ["auth", "username", "password", "identitytoken"])
    def test_rejects_non_string_fields(self, field):
        with pytest.raises(ValueError, match=f"{field} for registry r.io must be a string"):
            parse_docker_config({"auths": {"r.io": {field: 5}}})

    def test_non_ascii_auth_is_skipped(self):
        keychain = parse_docker_config({"auths": {"r.io": {"auth": "röbot"}}})
        assert keychain.empty


class TestKeychain:
    def test_merge_keeps_order_and_drops_duplicates(self):
        a = RegistryCredential(registry="r.io", username="a", password="1")
        b = RegistryCredential(registry="r.io", username="b", password="2")

        merged = Keychain(credentials=(a,)).merge(Keychain(credentials=(b, a)))

        assert merged.credentials == (a, b)

    def test_for_registry_filters_by_host(self):
        a = RegistryCredential(registry="r.io", username="a", password="1")
        b = RegistryCredential(registry="s.io", username="b", password="2")

        assert Keychain(credentials=(a, b)).for_registry("https://s.io/v2/") == [b]

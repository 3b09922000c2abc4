"""Distribution API client: manifest existence checks over httpx."""

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

import httpx

from kiae.domain.credential.model.credential import RegistryCredential
from kiae.domain.image.model.reference import ImageReference
from kiae.domain.shared.error import LegacyManifestError, RegistryError

LEGACY_MEDIA_TYPES = (
    "application/vnd.docker.distribution.manifest.v1+prettyjws",
    "application/vnd.docker.distribution.manifest.v1+json",
)

MANIFEST_MEDIA_TYPES = (
    "application/vnd.oci.image.index.v1+json",
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
    "application/vnd.docker.distribution.manifest.v2+json",
    *LEGACY_MEDIA_TYPES,
)

_ACCEPT = ", ".join(MANIFEST_MEDIA_TYPES)
_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')


@dataclass(frozen=True)
class Challenge:
    """Parsed ``WWW-Authenticate`` header."""

    scheme: str  # lower-cased: "bearer" or "basic"
    params: dict[str, str] = field(default_factory=dict)


def parse_challenge(header: str) -> Challenge | None:
    if not header.strip():
        return None
    scheme, _, rest = header.strip().partition(" ")
    return Challenge(
        scheme=scheme.lower(),
        params={k.lower(): v for k, v in _CHALLENGE_PARAM.findall(rest)},
    )


def _error_codes(response: httpx.Response) -> tuple[str, ...]:
    if not response.content:
        return ()
    try:
        body = response.json()
    except ValueError:
        return ()
    if not isinstance(body, dict):
        return ()
    return tuple(
        str(e["code"]) for e in body.get("errors") or [] if isinstance(e, dict) and e.get("code")
    )


def raise_for_status(response: httpx.Response) -> None:
    """Raise RegistryError for non-2xx answers, LegacyManifestError for schema-1 manifests."""
    if not response.is_success:
        raise RegistryError(
            f"{response.request.method} {response.request.url}: "
            f"unexpected status code {response.status_code}",
            status_code=response.status_code,
            error_codes=_error_codes(response),
        )
    media_type = response.headers.get("content-type", "").split(";", 1)[0].strip()
    if media_type in LEGACY_MEDIA_TYPES:
        raise LegacyManifestError(media_type)


class RegistryClient:
    """Checks manifest existence via ``HEAD /v2/<repository>/manifests/<ref>``.

    The ``httpx.AsyncClient`` is the shared transport (connection pool, TLS
    settings) and is only read from here, so one client serves every probe.

    Authentication follows the registry's ``WWW-Authenticate`` challenge:
    for a Bearer challenge a token is requested from the realm, for a Basic
    challenge credentials are sent directly. Candidates are tried in order
    until one is not rejected; ``None`` stands for anonymous access.
    """

    def __init__(self, client: httpx.AsyncClient, client_id: str = "kiae") -> None:
        self._client = client
        self._client_id = client_id

    async def head_manifest(
        self,
        ref: ImageReference,
        credentials: Sequence[RegistryCredential | None] = (None,),
    ) -> None:
        """Succeed if the manifest exists and is readable with one of ``credentials``.

        Raises:
            RegistryError: The registry rejected the request.
            LegacyManifestError: The manifest is a schema-1 manifest.
            httpx.HTTPError: Transport-level failure.
        """
        response = await self._head(ref)
        if response.status_code == 401:
            response = await self._authenticate(ref, response, credentials)
        raise_for_status(response)

    async def _head(self, ref: ImageReference, **kwargs) -> httpx.Response:
        headers = {"Accept": _ACCEPT, **kwargs.pop("headers", {})}
        return await self._client.head(ref.manifest_url, headers=headers, **kwargs)

    async def _authenticate(
        self,
        ref: ImageReference,
        unauthorized: httpx.Response,
        credentials: Sequence[RegistryCredential | None],
    ) -> httpx.Response:
        challenge = parse_challenge(unauthorized.headers.get("www-authenticate", ""))
        if challenge is None:
            return unauthorized

        response = unauthorized
        for credential in credentials:
            if challenge.scheme == "basic":
                if credential is None or not credential.has_basic:
                    continue
                response = await self._head(
                    ref, auth=httpx.BasicAuth(credential.username, credential.password)
                )
            elif challenge.scheme == "bearer":
                token = await self._fetch_token(ref, challenge, credential)
                if token is None:
                    continue
                response = await self._head(ref, headers={"Authorization": f"Bearer {token}"})
            else:
                raise RegistryError(f"unsupported auth scheme {challenge.scheme!r}")

            if response.status_code not in (401, 403):
                return response
        return response

    async def _fetch_token(
        self,
        ref: ImageReference,
        challenge: Challenge,
        credential: RegistryCredential | None,
    ) -> str | None:
        """Exchange credentials for a bearer token; None when the realm rejects them."""
        if credential is not None and credential.registry_token:
            return credential.registry_token

        realm = challenge.params.get("realm")
        if not realm:
            raise RegistryError("bearer challenge without realm")
        params = {"scope": challenge.params.get("scope") or f"repository:{ref.repository}:pull"}
        if challenge.params.get("service"):
            params["service"] = challenge.params["service"]

        if credential is not None and credential.identity_token:
            response = await self._client.post(
                realm,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": credential.identity_token,
                    "client_id": self._client_id,
                    **params,
                },
            )
        elif credential is not None and credential.has_basic:
            response = await self._client.get(
                realm, params=params, auth=httpx.BasicAuth(credential.username, credential.password)
            )
        else:
            response = await self._client.get(realm, params=params)

        if response.status_code in (401, 403):
            return None
        if not response.is_success:
            # Token endpoint failures say nothing about the image itself
            raise RegistryError(f"token endpoint {realm} returned {response.status_code}")
        body = response.json()
        if not isinstance(body, dict):
            raise RegistryError(f"token endpoint {realm} returned a non-object body")
        token =body.get("token") or body.get("access_token")
        if not token:
            raise RegistryError(f"token endpoint {realm} returned no token")
        return token

"""Image reference parsing.

Follows the distribution reference grammar:

    reference := name [ ":" tag ] [ "@" digest ]
    name      := [ domain "/" ] path-component [ "/" path-component ]*
"""

import re

from kiae.domain.credential.model.credential import DOCKER_HUB, normalize_registry
from kiae.domain.shared.error import BadImageNameError
from kiae.domain.shared.model.value import ValueObject

DEFAULT_TAG = "latest"

_PATH_COMPONENT = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
_DOMAIN_COMPONENT = r"(?:[a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9-]*[a-zA-Z0-9])"
_DOMAIN = re.compile(
    rf"^(?:{_DOMAIN_COMPONENT}(?:\.{_DOMAIN_COMPONENT})*|\[[0-9a-fA-F:]+\])(?::[0-9]+)?$"
)
_TAG = re.compile(r"^[\w][\w.-]{0,127}$")
_DIGEST = re.compile(r"^[A-Za-z][A-Za-z0-9]*(?:[-_+.][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}$")
_MAX_NAME_LENGTH = 255

_PLAIN_HTTP_HOSTS = ("localhost", "127.0.0.1", "[::1]")


def _looks_like_domain(component: str) -> bool:
    return "." in component or ":" in component or component == "localhost"


def _default_scheme(registry: str) -> str:
    host = registry.rsplit(":", 1)[0] if not registry.endswith("]") else registry
    if host in _PLAIN_HTTP_HOSTS or host.endswith(".localhost") or host.endswith(".local"):
        return "http"
    return "https"


class ImageReference(ValueObject):
    """A parsed image reference pointing at one manifest in one registry."""

    registry: str
    repository: str
    tag: str | None = None
    digest: str | None = None
    scheme: str = "https"

    @property
    def identifier(self) -> str:
        """Tag or digest used in the manifest path (digest wins when both are set)."""
        return self.digest or self.tag or DEFAULT_TAG

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.registry}"

    @property
    def manifest_url(self) -> str:
        return f"{self.base_url}/v2/{self.repository}/manifests/{self.identifier}"

    def __str__(self) -> str:
        name = f"{self.registry}/{self.repository}"
        if self.tag:
            name += f":{self.tag}"
        if self.digest:
            name += f"@{self.digest}"
        return name

    @classmethod
    def parse(
        cls,
        reference: str,
        default_registry: str = "",
        plain_http: bool = False,
    ) -> "ImageReference":
        """Parse ``reference``.

        Args:
            reference: Image reference as written in a pod template.
            default_registry: Host used when the reference has no domain part.
                Docker Hub when empty.
            plain_http: Talk to the registry over plain HTTP.

        Raises:
            BadImageNameError: If the reference is malformed.
        """
        if not reference or reference != reference.strip():
            raise BadImageNameError(reference, "empty or surrounded by whitespace")

        remainder = reference
        digest = None
        if "@" in remainder:
            remainder, digest = remainder.split("@", 1)
            if not _DIGEST.match(digest):
                raise BadImageNameError(reference, f"invalid digest {digest!r}")

        tag = None
        last_slash = remainder.rfind("/")
        colon = remainder.rfind(":")
        if colon > last_slash:
            remainder, tag = remainder[:colon], remainder[colon + 1 :]
            if not _TAG.match(tag):
                raise BadImageNameError(reference, f"invalid tag {tag!r}")

        if len(remainder) > _MAX_NAME_LENGTH:
            raise BadImageNameError(reference, "repository name too long")

        parts = remainder.split("/")
        if len(parts) > 1 and _looks_like_domain(parts[0]):
            registry, path = parts[0], parts[1:]
            if not _DOMAIN.match(registry):
                raise BadImageNameError(reference, f"invalid registry {registry!r}")
            registry = normalize_registry(registry) if registry.lower() == "docker.io" else registry
        else:
            registry = default_registry or DOCKER_HUB
            path = parts

        for component in path:
            if not _PATH_COMPONENT.match(component):
                raise BadImageNameError(reference, f"invalid repository component {component!r}")

        repository = "/".join(path)
        if registry == DOCKER_HUB and len(path) == 1:
            repository = f"library/{repository}"

        if tag is None and digest is None:
            tag = DEFAULT_TAG

        return cls(
            registry=registry,
            repository=repository,
            tag=tag,
            digest=digest,
            scheme="http" if plain_http else _default_scheme(registry),
        )

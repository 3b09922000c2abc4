"""RegistryProbe - bounded, retried existence/authorization check for one image."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx
import logfire

from kiae.domain.credential.model.credential import Keychain, RegistryCredential
from kiae.domain.image.model.reference import ImageReference
from kiae.domain.image.model.value import AvailabilityMode
from kiae.domain.shared.error import BadImageNameError, InfrastructureError
from kiae.infrastructure.registry.client import RegistryClient
from kiae.infrastructure.registry.errors import classify
from kiae.infrastructure.registry.keychain import AmbientKeychain
from kiae.infrastructure.registry.retry import Attempting, Retry, RetryPolicy

logger = logging.getLogger(__name__)

ATTEMPT_TIMEOUT = 15.0


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one probe: resulting mode, the final error, attempts made."""

    mode: AvailabilityMode
    error: BaseException | None = None
    attempts: int = 0


class RegistryProbe:
    """Checks that an image reference is pullable.

    Stateless apart from the shared client, so distinct images can be probed
    concurrently. Every attempt has its own deadline; attempts are governed by
    ``RetryPolicy`` (two attempts, one second backoff by default) and the
    first ``Available`` result ends the probe.

    Credentials are tried in the order a container runtime would use them:
    the workload's keychain, then the ambient keychain, then anonymous.
    """

    def __init__(
        self,
        client: RegistryClient,
        default_registry: str = "",
        plain_http: bool = False,
        attempt_timeout: float = ATTEMPT_TIMEOUT,
        policy: RetryPolicy | None = None,
        ambient: Callable[[], Keychain] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._default_registry = default_registry
        self._plain_http = plain_http
        self._attempt_timeout = attempt_timeout
        self._policy = policy or RetryPolicy()
        self._ambient = ambient or AmbientKeychain()
        self._sleep = sleep

    def parse(self, image: str) -> ImageReference:
        return ImageReference.parse(image, self._default_registry, self._plain_http)

    async def probe(self, image: str, keychain: Keychain | None = None) -> ProbeResult:
        try:
            ref = self.parse(image)
        except BadImageNameError as e:
            result = ProbeResult(mode=AvailabilityMode.BAD_IMAGE_NAME, error=e)
            self._report(image, result)
            return result

        candidates = self._candidates(ref, keychain or Keychain())
        state = self._policy.start()
        while True:
            error = await self._attempt(ref, candidates)
            mode = classify(error)
            outcome = self._policy.advance(state, mode is AvailabilityMode.AVAILABLE)
            if not isinstance(outcome, Retry):
                break
            logger.debug(
                "Attempt %d for %s ended as %s, retrying in %.1fs",
                state.number,
                image,
                mode,
                outcome.delay,
            )
            await self._sleep(outcome.delay)
            state = Attempting(number=outcome.number)

        result = ProbeResult(mode=mode, error=error, attempts=outcome.attempts)
        if mode is not AvailabilityMode.AVAILABLE:
            self._report(image, result)
        return result

    def _candidates(
        self, ref: ImageReference, keychain: Keychain
    ) -> list[RegistryCredential | None]:
        found = keychain.merge(self._ambient()).for_registry(ref.registry)
        return [*found, None]

    async def _attempt(
        self, ref: ImageReference, candidates: list[RegistryCredential | None]
    ) -> BaseException | None:
        try:
            await asyncio.wait_for(
                self._client.head_manifest(ref, candidates),
                timeout=self._attempt_timeout,
            )
        except asyncio.TimeoutError:
            return TimeoutError(f"no answer from {ref.registry} within {self._attempt_timeout}s")
        except (InfrastructureError, httpx.HTTPError, ValueError) as e:
            return e
        return None

    @staticmethod
    def _report(image: str, result: ProbeResult) -> None:
        logfire.error(
            "Image check failed",
            image=image,
            availability_mode=result.mode.label,
            attempts=result.attempts,
            error=str(result.error),
        )

"""ImageChecker port - performs one availability check for an image."""

from typing import Protocol

from kiae.domain.image.model.value import AvailabilityMode


class ImageChecker(Protocol):
    """Checks whether an image is pullable right now.

    Implementations resolve credentials and talk to the registry. They must
    classify every failure into an AvailabilityMode instead of raising.
    """

    async def check(self, image: str) -> AvailabilityMode: ...

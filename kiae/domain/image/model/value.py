"""Image availability domain models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from kiae.domain.shared.model.value import ValueObject
from kiae.domain.workload.model.workload import WorkloadKind


class AvailabilityMode(StrEnum):
    """Result of the last completed check of an image.

    The value is the stable label used for metric export.
    """

    UNKNOWN = "unknown"
    AVAILABLE = "available"
    ABSENT = "absent"
    AUTHN_FAILURE = "authentication_failure"
    AUTHZ_FAILURE = "authorization_failure"
    BAD_IMAGE_NAME = "bad_image_format"
    UNKNOWN_ERROR = "unknown_error"

    @property
    def label(self) -> str:
        return self.value

    @property
    def is_failure(self) -> bool:
        """Failure states that are rechecked from the retry queue."""
        return self in _RETRYABLE_FAILURES


_RETRYABLE_FAILURES = frozenset(
    {
        AvailabilityMode.ABSENT,
        AvailabilityMode.AUTHN_FAILURE,
        AvailabilityMode.AUTHZ_FAILURE,
        AvailabilityMode.UNKNOWN_ERROR,
    }
)


class ContainerRef(ValueObject):
    """One container slot of a workload template that declares an image."""

    namespace: str
    kind: WorkloadKind
    name: str  # controller name
    container: str


class ImageSample(ValueObject):
    """Best-known availability of one image, for metric export."""

    image: str
    availability: AvailabilityMode
    containers: frozenset[ContainerRef]


@dataclass
class ImageRecord:
    """Per-image availability state. Owned exclusively by the ImageStore."""

    image: str
    containers: frozenset[ContainerRef] = frozenset()
    availability: AvailabilityMode = AvailabilityMode.UNKNOWN
    last_checked_at: datetime | None = None
    consecutive_failures: int = 0
    deferred: bool = False
    # Bumped on every membership change; GC compares it before deleting.
    generation: int = field(default=0, compare=False)

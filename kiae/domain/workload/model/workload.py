"""Workload domain models.

A workload is any controller-managed group of pods whose template declares
container images. Every controller kind flows through the same types; the kind
is carried as a tag rather than by per-kind classes.
"""

from enum import StrEnum

from pydantic import Field

from kiae.domain.shared.model.value import ValueObject


class WorkloadKind(StrEnum):
    DEPLOYMENT = "Deployment"
    STATEFUL_SET = "StatefulSet"
    DAEMON_SET = "DaemonSet"
    CRON_JOB = "CronJob"

    @classmethod
    def parse(cls, value: str) -> "WorkloadKind":
        """Case-insensitive lookup by kind name."""
        for kind in cls:
            if kind.value.lower() == value.strip().lower():
                return kind
        raise ValueError(f"Unknown controller kind: {value!r}")


class WorkloadIdentity(ValueObject):
    kind: WorkloadKind
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.kind}/{self.namespace}/{self.name}"


class WorkloadSpec(ValueObject):
    """Image-relevant extract of a workload's pod template.

    Built once at ingestion by the transform step; never recomputed per query.
    """

    containers: dict[str, str] = Field(default_factory=dict)  # container name -> image
    service_account: str = "default"
    pull_secrets: tuple[str, ...] = ()  # imagePullSecrets declared on the template
    enabled: bool = True  # False for zero replicas or a suspended CronJob

    @property
    def images(self) -> frozenset[str]:
        return frozenset(self.containers.values())


class WorkloadChanged(ValueObject):
    """A workload was added, updated, or deleted.

    ``spec`` is None for deletions.
    """

    identity: WorkloadIdentity
    spec: WorkloadSpec | None = None

    @property
    def deleted(self) -> bool:
        return self.spec is None

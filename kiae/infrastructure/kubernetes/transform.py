"""Extract image-relevant data from workload objects at ingestion time."""

from typing import Any

from kiae.domain.workload.model.workload import WorkloadIdentity, WorkloadKind, WorkloadSpec


def _pod_spec(kind: WorkloadKind, obj: Any) -> Any:
    if kind is WorkloadKind.CRON_JOB:
        return obj.spec.job_template.spec.template.spec
    return obj.spec.template.spec


def _enabled(kind: WorkloadKind, obj: Any) -> bool:
    """Whether the controller currently wants pods at all."""
    if kind in (WorkloadKind.DEPLOYMENT, WorkloadKind.STATEFUL_SET):
        return obj.spec.replicas != 0
    if kind is WorkloadKind.CRON_JOB:
        return not obj.spec.suspend
    status = obj.status
    return status is None or status.desired_number_scheduled != 0


def workload_identity(kind: WorkloadKind, obj: Any) -> WorkloadIdentity:
    return WorkloadIdentity(kind=kind, namespace=obj.metadata.namespace, name=obj.metadata.name)


def to_workload_spec(kind: WorkloadKind, obj: Any) -> WorkloadSpec:
    """Build a WorkloadSpec from a Deployment, StatefulSet, DaemonSet, or CronJob.

    Init containers are included; a pod cannot start if their image is gone.
    """
    pod = _pod_spec(kind, obj)
    containers = [*(pod.init_containers or []), *(pod.containers or [])]
    return WorkloadSpec(
        containers={c.name: c.image for c in containers if c.image},
        service_account=pod.service_account_name or "default",
        pull_secrets=tuple(s.name for s in pod.image_pull_secrets or [] if s.name),
        enabled=_enabled(kind, obj),
    )

"""Global test fixtures: Kubernetes object builders."""

import logfire
import pytest
from kubernetes.client import (
    V1Container,
    V1CronJob,
    V1CronJobSpec,
    V1DaemonSet,
    V1DaemonSetSpec,
    V1DaemonSetStatus,
    V1Deployment,
    V1DeploymentSpec,
    V1JobSpec,
    V1JobTemplateSpec,
    V1LabelSelector,
    V1LocalObjectReference,
    V1ObjectMeta,
    V1PodSpec,
    V1PodTemplateSpec,
    V1StatefulSet,
    V1StatefulSetSpec,
)

# Probe failures and instrumentation emit logfire events; keep them local
logfire.configure(send_to_logfire=False, console=False)


def pod_template(
    containers: dict[str, str],
    init_containers: dict[str, str] | None = None,
    service_account: str | None = None,
    pull_secrets: tuple[str, ...] = (),
) -> V1PodTemplateSpec:
    return V1PodTemplateSpec(
        spec=V1PodSpec(
            containers=[V1Container(name=n, image=i) for n, i in containers.items()],
            init_containers=[V1Container(name=n, image=i) for n, i in init_containers.items()]
            if init_containers
            else None,
            service_account_name=service_account,
            image_pull_secrets=[V1LocalObjectReference(name=s) for s in pull_secrets] or None,
        )
    )


class K8sObjects:
    """Builders for workload objects as the Kubernetes client returns them."""

    @staticmethod
    def deployment(name, namespace="default", replicas=1, **template) -> V1Deployment:
        return V1Deployment(
            metadata=V1ObjectMeta(name=name, namespace=namespace),
            spec=V1DeploymentSpec(
                replicas=replicas,
                selector=V1LabelSelector(match_labels={"app": name}),
                template=pod_template(**template),
            ),
        )

    @staticmethod
    def stateful_set(name, namespace="default", replicas=1, **template) -> V1StatefulSet:
        return V1StatefulSet(
            metadata=V1ObjectMeta(name=name, namespace=namespace),
            spec=V1StatefulSetSpec(
                replicas=replicas,
                service_name=name,
                selector=V1LabelSelector(match_labels={"app": name}),
                template=pod_template(**template),
            ),
        )

    @staticmethod
    def daemon_set(name, namespace="default", desired=1, **template) -> V1DaemonSet:
        return V1DaemonSet(
            metadata=V1ObjectMeta(name=name, namespace=namespace),
            spec=V1DaemonSetSpec(
                selector=V1LabelSelector(match_labels={"app": name}),
                template=pod_template(**template),
            ),
            status=V1DaemonSetStatus(
                current_number_scheduled=desired,
                desired_number_scheduled=desired,
                number_misscheduled=0,
                number_ready=desired,
            ),
        )

    @staticmethod
    def cron_job(name, namespace="default", suspend=False, **template) -> V1CronJob:
        return V1CronJob(
            metadata=V1ObjectMeta(name=name, namespace=namespace),
            spec=V1CronJobSpec(
                schedule="*/5 * * * *",
                suspend=suspend,
                job_template=V1JobTemplateSpec(spec=V1JobSpec(template=pod_template(**template))),
            ),
        )


@pytest.fixture
def k8s() -> type[K8sObjects]:
    return K8sObjects

"""Unit tests for KubernetesSource list-based resync."""

import base64
import json
from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client import V1LocalObjectReference, V1ObjectMeta, V1Secret, V1ServiceAccount
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException

from kiae.config import KubernetesConfig
from kiae.domain.shared.error import ClusterSourceError, ConfigurationError
from kiae.domain.workload.model.workload import WorkloadIdentity, WorkloadKind
from kiae.infrastructure.kubernetes.identity import DOCKER_CONFIG_JSON, IdentityCache
from kiae.infrastructure.kubernetes.source import KubernetesSource, build_api_client

WEB = WorkloadIdentity(kind=WorkloadKind.DEPLOYMENT, namespace="shop", name="web")


def listing(*items) -> MagicMock:
    return MagicMock(items=list(items))


class FakeCluster:
    """Mocked AppsV1Api, BatchV1Api, and CoreV1Api backed by plain lists."""

    def __init__(self) -> None:
        self.apps = MagicMock()
        self.batch = MagicMock()
        self.core = MagicMock()
        self.set(deployments=[])

    def set(
        self,
        deployments=(),
        stateful_sets=(),
        daemon_sets=(),
        cron_jobs=(),
        service_accounts=(),
        secrets=(),
        namespaces=(),
    ) -> None:
        self.apps.list_deployment_for_all_namespaces.return_value = listing(*deployments)
        self.apps.list_stateful_set_for_all_namespaces.return_value = listing(*stateful_sets)
        self.apps.list_daemon_set_for_all_namespaces.return_value = listing(*daemon_sets)
        self.batch.list_cron_job_for_all_namespaces.return_value = listing(*cron_jobs)
        self.core.list_service_account_for_all_namespaces.return_value = listing(
            *service_accounts
        )
        self.core.list_secret_for_all_namespaces.side_effect = lambda field_selector: listing(
            *(s for s in secrets if f"type={s.type}" == field_selector)
        )
        self.core.list_namespace.return_value = listing(*namespaces)


@pytest.fixture
def cluster():
    fake = FakeCluster()
    with (
        patch("kiae.infrastructure.kubernetes.source.client.AppsV1Api", return_value=fake.apps),
        patch("kiae.infrastructure.kubernetes.source.client.BatchV1Api", return_value=fake.batch),
        patch("kiae.infrastructure.kubernetes.source.client.CoreV1Api", return_value=fake.core),
    ):
        yield fake


def make_source(**kwargs) -> tuple[KubernetesSource, MagicMock, IdentityCache]:
    handler = MagicMock()
    identity = IdentityCache()
    source = KubernetesSource(
        api_client=MagicMock(), identity=identity, handler=handler, **kwargs
    )
    return source, handler, identity


def events(handler: MagicMock) -> list:
    return [call.args[0] for call in handler.call_args_list]


def docker_secret(name: str, namespace: str, config) -> V1Secret:
    payload = base64.b64encode(json.dumps(config).encode()).decode()
    return V1Secret(
        metadata=V1ObjectMeta(name=name, namespace=namespace),
        type=DOCKER_CONFIG_JSON,
        data={".dockerconfigjson": payload},
    )


class TestKubernetesSource:
    @pytest.mark.asyncio
    async def test_initial_sync_delivers_all_workloads(self, cluster, k8s):
        cluster.set(
            deployments=[k8s.deployment("web", namespace="shop", containers={"app": "nginx"})],
            cron_jobs=[k8s.cron_job("backup", namespace="ops", containers={"job": "backup:1"})],
        )
        source, handler, _ = make_source()

        assert not source.initial_sync.is_set()
        delivered = await source.sync_once()

        assert delivered == 2
        assert source.initial_sync.is_set()
        identities = {event.identity for event in events(handler)}
        assert identities == {
            WEB,
            WorkloadIdentity(kind=WorkloadKind.CRON_JOB, namespace="ops", name="backup"),
        }

    @pytest.mark.asyncio
    async def test_unchanged_workloads_are_not_redelivered(self, cluster, k8s):
        cluster.set(deployments=[k8s.deployment("web", namespace="shop", containers={"app": "nginx"})])
        source, handler, _ = make_source()
        await source.sync_once()
        handler.reset_mock()

        assert await source.sync_once() == 0
        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_changed_and_deleted_workloads(self, cluster, k8s):
        cluster.set(
            deployments=[
                k8s.deployment("web", namespace="shop", containers={"app": "nginx:1.25"}),
                k8s.deployment("api", namespace="shop", containers={"app": "api:1"}),
            ]
        )
        source, handler, _ = make_source()
        await source.sync_once()
        handler.reset_mock()

        cluster.set(
            deployments=[k8s.deployment("web", namespace="shop", containers={"app": "nginx:1.26"})]
        )
        await source.sync_once()

        delivered = {event.identity.name: event for event in events(handler)}
        assert delivered["web"].spec.containers == {"app": "nginx:1.26"}
        assert delivered["api"].deleted

    @pytest.mark.asyncio
    async def test_identity_state_updated_before_workloads(self, cluster, k8s):
        config = {"auths": {"r.io": {"auth": base64.b64encode(b"robot:pw").decode()}}}
        cluster.set(
            deployments=[k8s.deployment("web", namespace="shop", containers={"app": "r.io/app"})],
            service_accounts=[
                V1ServiceAccount(
                    metadata=V1ObjectMeta(name="default", namespace="shop"),
                    image_pull_secrets=[V1LocalObjectReference(name="regcred")],
                )
            ],
            secrets=[
                V1Secret(
                    metadata=V1ObjectMeta(name="regcred", namespace="shop"),
                    type=DOCKER_CONFIG_JSON,
                    data={".dockerconfigjson": base64.b64encode(json.dumps(config).encode()).decode()},
                )
            ],
        )
        source, handler, identity = make_source()
        seen_at_delivery = []
        handler.side_effect = lambda event: seen_at_delivery.append(
            identity.pull_secret("shop", "regcred")
        )

        await source.sync_once()

        assert identity.service_account_pull_secrets("shop", "default") == ("regcred",)
        [keychain] = seen_at_delivery
        assert keychain.credentials[0].username == "robot"

    @pytest.mark.asyncio
    async def test_namespace_label_filters_workloads(self, cluster, k8s):
        cluster.set(
            deployments=[
                k8s.deployment("web", namespace="shop", containers={"app": "nginx"}),
                k8s.deployment("web", namespace="other", containers={"app": "nginx"}),
            ],
            namespaces=[MagicMock(metadata=V1ObjectMeta(name="shop"))],
        )
        source, handler, _ = make_source(namespace_label="team=shop")

        await source.sync_once()

        cluster.core.list_namespace.assert_called_once_with(label_selector="team=shop")
        assert [event.identity for event in events(handler)] == [WEB]

    @pytest.mark.asyncio
    async def test_failed_list_keeps_previous_state(self, cluster, k8s):
        cluster.set(deployments=[k8s.deployment("web", namespace="shop", containers={"app": "nginx"})])
        source, handler, _ = make_source()
        await source.sync_once()
        handler.reset_mock()

        cluster.apps.list_deployment_for_all_namespaces.side_effect = RuntimeError("api down")
        with pytest.raises(RuntimeError):
            await source.sync_once()
        handler.assert_not_called()

        cluster.apps.list_deployment_for_all_namespaces.side_effect = None
        assert await source.sync_once() == 0

    @pytest.mark.asyncio
    async def test_failed_initial_list_does_not_mark_synced(self, cluster):
        cluster.apps.list_deployment_for_all_namespaces.side_effect = RuntimeError("api down")
        source, _, _ = make_source()

        with pytest.raises(RuntimeError):
            await source.sync_once()

        assert not source.initial_sync.is_set()

    @pytest.mark.asyncio
    async def test_malformed_secrets_do_not_block_sync(self, cluster, k8s):
        good = {"auths": {"r.io": {"auth": base64.b64encode(b"robot:pw").decode()}}}
        cluster.set(
            deployments=[k8s.deployment("web", namespace="shop", containers={"app": "r.io/app"})],
            secrets=[
                docker_secret("numeric-auth", "shop", {"auths": {"r.io": {"auth": 5}}}),
                docker_secret("list-auths", "shop", {"auths": ["r.io"]}),
                docker_secret("regcred", "shop", good),
            ],
        )
        source, handler, identity = make_source()

        assert await source.sync_once() == 1

        assert source.initial_sync.is_set()
        assert [event.identity for event in events(handler)] == [WEB]
        assert identity.pull_secret("shop", "numeric-auth") is None
        assert identity.pull_secret("shop", "list-auths") is None
        assert identity.pull_secret("shop", "regcred").credentials[0].username == "robot"

    @pytest.mark.asyncio
    async def test_api_errors_are_wrapped(self, cluster):
        cluster.core.list_service_account_for_all_namespaces.side_effect = ApiException(
            status=403, reason="Forbidden"
        )
        source, handler, _ = make_source()

        with pytest.raises(ClusterSourceError, match="403 Forbidden"):
            await source.sync_once()

        handler.assert_not_called()
        assert not source.initial_sync.is_set()


class TestBuildApiClient:
    def test_kubeconfig(self):
        with patch("kiae.infrastructure.kubernetes.source.k8s_config") as k8s_config:
            build_api_client(KubernetesConfig(in_cluster=False, kubeconfig="/tmp/kubeconfig"))

        k8s_config.load_kube_config.assert_called_once()
        assert k8s_config.load_kube_config.call_args.kwargs["config_file"] == "/tmp/kubeconfig"
        k8s_config.load_incluster_config.assert_not_called()

    def test_auto_detects_in_cluster(self, monkeypatch):
        monkeypatch.setenv("KUBERNETES_SERVICE_HOST", "10.0.0.1")
        with patch("kiae.infrastructure.kubernetes.source.k8s_config") as k8s_config:
            build_api_client(KubernetesConfig())

        k8s_config.load_incluster_config.assert_called_once()

    def test_missing_configuration(self):
        with patch("kiae.infrastructure.kubernetes.source.k8s_config") as k8s_config:
            k8s_config.load_kube_config.side_effect = ConfigException("no config")
            with pytest.raises(ConfigurationError, match="no config"):
                build_api_client(KubernetesConfig(in_cluster=False))

"""Cluster source: keeps the engine fed with workload and identity state."""

import asyncio
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field

from kubernetes import client
from kubernetes import config as k8s_config
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException

from kiae.config import KubernetesConfig
from kiae.domain.credential.model.credential import Keychain
from kiae.domain.shared.error import ClusterSourceError, ConfigurationError
from kiae.domain.workload.model.workload import (
    WorkloadChanged,
    WorkloadIdentity,
    WorkloadKind,
    WorkloadSpec,
)
from kiae.infrastructure.kubernetes.identity import (
    DOCKER_CFG,
    DOCKER_CONFIG_JSON,
    IdentityCache,
    ObjectKey,
    secret_keychain,
    service_account_pull_secrets,
)
from kiae.infrastructure.kubernetes.transform import to_workload_spec, workload_identity

logger = logging.getLogger(__name__)


def build_api_client(config: KubernetesConfig) -> client.ApiClient:
    """Create the Kubernetes API client.

    Raises:
        ConfigurationError: If neither in-cluster nor kubeconfig credentials load.
    """
    configuration = client.Configuration()
    in_cluster = config.in_cluster
    if in_cluster is None:
        in_cluster = "KUBERNETES_SERVICE_HOST" in os.environ
    try:
        if in_cluster:
            k8s_config.load_incluster_config(client_configuration=configuration)
        else:
            k8s_config.load_kube_config(
                config_file=config.kubeconfig, client_configuration=configuration
            )
    except ConfigException as e:
        raise ConfigurationError(f"Failed to load Kubernetes configuration: {e}") from e
    return client.ApiClient(configuration)


@dataclass
class ClusterSnapshot:
    """Everything one list pass saw."""

    workloads: dict[WorkloadIdentity, WorkloadSpec] = field(default_factory=dict)
    service_accounts: dict[ObjectKey, tuple[str, ...]] = field(default_factory=dict)
    secrets: dict[ObjectKey, Keychain] = field(default_factory=dict)


class KubernetesSource:
    """List-based resync of workloads and identity objects.

    Every ``resync_period`` seconds all tracked controller kinds, service
    accounts, and docker-config secrets are listed. Identity state is swapped
    in first, then one WorkloadChanged message is delivered per new or
    changed workload and one deletion per workload that disappeared.
    ``initial_sync`` is set after the first complete pass; a failed pass keeps
    the previous snapshot and is retried on the next period.
    """

    def __init__(
        self,
        api_client: client.ApiClient,
        identity: IdentityCache,
        handler: Callable[[WorkloadChanged], None],
        namespace_label: str = "",
        resync_period: float = 60.0,
    ) -> None:
        self._apps = client.AppsV1Api(api_client)
        self._batch = client.BatchV1Api(api_client)
        self._core = client.CoreV1Api(api_client)
        self._identity = identity
        self._handler = handler
        self._namespace_label = namespace_label
        self._resync_period = resync_period
        self._known: dict[WorkloadIdentity, WorkloadSpec] = {}
        self.initial_sync = asyncio.Event()

    async def run(self) -> None:
        """Resync forever. Cancel the task to stop."""
        while True:
            try:
                await self.sync_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Cluster resync failed, keeping previous state: %s", e)
            await asyncio.sleep(self._resync_period)

    async def sync_once(self) -> int:
        """Run one list pass and deliver the differences.

        Returns:
            Number of WorkloadChanged messages delivered.

        Raises:
            ClusterSourceError: The API server rejected a list call.
        """
        if not self.initial_sync.is_set():
            logger.info("Waiting for cache sync")

        try:
            snapshot = await asyncio.to_thread(self._list_cluster)
        except ApiException as e:
            raise ClusterSourceError(f"Listing cluster objects failed: {e.status} {e.reason}") from e
        self._identity.replace(snapshot.service_accounts, snapshot.secrets)

        delivered = 0
        for identity, spec in snapshot.workloads.items():
            if self._known.get(identity) == spec:
                continue
            self._handler(WorkloadChanged(identity=identity, spec=spec))
            delivered += 1
        for identity in self._known.keys() - snapshot.workloads.keys():
            self._handler(WorkloadChanged(identity=identity))
            delivered += 1
        self._known = snapshot.workloads

        if not self.initial_sync.is_set():
            self.initial_sync.set()
            logger.info("Caches populated successfully (%d workloads)", len(self._known))
        return delivered

    def _listers(self) -> dict[WorkloadKind, Callable[[], object]]:
        return {
            WorkloadKind.DEPLOYMENT: self._apps.list_deployment_for_all_namespaces,
            WorkloadKind.STATEFUL_SET: self._apps.list_stateful_set_for_all_namespaces,
            WorkloadKind.DAEMON_SET: self._apps.list_daemon_set_for_all_namespaces,
            WorkloadKind.CRON_JOB: self._batch.list_cron_job_for_all_namespaces,
        }

    def _list_cluster(self) -> ClusterSnapshot:
        snapshot = ClusterSnapshot()

        selected: set[str] | None = None
        if self._namespace_label:
            namespaces = self._core.list_namespace(label_selector=self._namespace_label)
            selected = {ns.metadata.name for ns in namespaces.items}

        for kind, lister in self._listers().items():
            for obj in lister().items:
                if selected is not None and obj.metadata.namespace not in selected:
                    continue
                snapshot.workloads[workload_identity(kind, obj)] = to_workload_spec(kind, obj)

        for sa in self._core.list_service_account_for_all_namespaces().items:
            key = (sa.metadata.namespace, sa.metadata.name)
            snapshot.service_accounts[key] = service_account_pull_secrets(sa)

        for secret_type in (DOCKER_CONFIG_JSON, DOCKER_CFG):
            secrets = self._core.list_secret_for_all_namespaces(field_selector=f"type={secret_type}")
            for secret in secrets.items:
                keychain = secret_keychain(secret)
                if keychain is not None:
                    snapshot.secrets[(secret.metadata.namespace, secret.metadata.name)] = keychain

        return snapshot

"""
Broker bootstrap.

``ensure_broker`` sets up the namespace, the administrator and cluster RBAC
and returns the administrator token secret. ``provision_cluster`` enrolls a
single cluster. Every step is idempotent and the first failure aborts the
sequence; whatever was created before it stays for the next run to reuse.
"""
import logging
from typing import Iterable

from kubernetes import client

from broker_bootstrap import templates
from broker_bootstrap.config import DEFAULT_NAMES, TOKEN_BACKOFF, Backoff, BrokerNames
from broker_bootstrap.crds import DEFAULT_REGISTRY, CapabilityRegistry, ensure_prerequisites
from broker_bootstrap.k8s import KubeClients
from broker_bootstrap.resources import create_or_ignore_exists, create_or_update_role
from broker_bootstrap.tokens import wait_for_client_token

logger = logging.getLogger("k8s-broker")


def ensure_broker(clients: KubeClients, components: Iterable[str], crds: bool, namespace: str,
                  names: BrokerNames = DEFAULT_NAMES, backoff: Backoff = TOKEN_BACKOFF,
                  registry: CapabilityRegistry = DEFAULT_REGISTRY) -> client.V1Secret:
    """
    Provision the broker in ``namespace`` and return the administrator token secret.

    ``registry`` maps component tags to their CRD installers when ``crds`` is set.
    """
    components = list(components)
    logger.info(f"🚀 ensuring broker in ns={namespace} components={components} crds={crds}")

    if crds:
        ensure_prerequisites(components, clients.apiextensions_v1, registry=registry)

    create_or_ignore_exists(clients.core_v1.create_namespace, templates.new_namespace(namespace),
                            "error creating the broker namespace")

    _create_admin_role_and_sa(clients, namespace, names)
    _create_cluster_role_and_default_sa(clients, namespace, names)

    secret = wait_for_client_token(clients.core_v1, names.admin_sa, namespace, backoff=backoff)
    logger.info(f"✅ broker ready in ns={namespace}")
    return secret


def _create_admin_role_and_sa(clients: KubeClients, namespace: str, names: BrokerNames) -> None:
    # SA used to manage the broker and enroll clusters
    create_or_ignore_exists(clients.core_v1.create_namespaced_service_account,
                            templates.new_service_account(names.admin_sa),
                            "error creating the broker admin service account", namespace=namespace)

    create_or_update_role(clients.rbac_v1, namespace, templates.new_admin_role(names.admin_role),
                          "error creating the broker admin role")

    create_or_ignore_exists(clients.rbac_v1.create_namespaced_role_binding,
                            templates.new_role_binding(names.admin_sa, names.admin_role, namespace),
                            "error creating the broker admin rolebinding", namespace=namespace)


def _create_cluster_role_and_default_sa(clients: KubeClients, namespace: str, names: BrokerNames) -> None:
    # Shared SA for clusters joined before per-cluster SAs existed
    create_or_ignore_exists(clients.core_v1.create_namespaced_service_account,
                            templates.new_service_account(names.default_cluster_sa),
                            "error creating the default broker service account", namespace=namespace)

    # Also bound to every per-cluster SA by provision_cluster
    create_or_update_role(clients.rbac_v1, namespace, templates.new_cluster_role(names.cluster_role),
                          "error creating the broker cluster role")

    create_or_ignore_exists(clients.rbac_v1.create_namespaced_role_binding,
                            templates.new_role_binding(names.default_cluster_sa, names.cluster_role, namespace),
                            "error creating the broker cluster rolebinding", namespace=namespace)


def provision_cluster(clients: KubeClients, cluster_id: str, namespace: str,
                      names: BrokerNames = DEFAULT_NAMES, backoff: Backoff = TOKEN_BACKOFF) -> client.V1Secret:
    """Create the SA of ``cluster_id``, bind it to the cluster role and return its token secret."""
    sa_name = names.cluster_sa_name(cluster_id)
    logger.info(f"🔑 provisioning cluster={cluster_id} as ServiceAccount={sa_name} in ns={namespace}")

    create_or_ignore_exists(clients.core_v1.create_namespaced_service_account,
                            templates.new_service_account(sa_name),
                            "error creating cluster sa", namespace=namespace)

    create_or_ignore_exists(clients.rbac_v1.create_namespaced_role_binding,
                            templates.new_role_binding(sa_name, names.cluster_role, namespace),
                            "error binding sa to cluster role", namespace=namespace)

    return wait_for_client_token(clients.core_v1, sa_name, namespace, backoff=backoff)

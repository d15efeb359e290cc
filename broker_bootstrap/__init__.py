"""Bootstrap of the shared multi-cluster broker: namespace, RBAC and client tokens."""
from broker_bootstrap.config import DEFAULT_NAMES, Backoff, BrokerNames
from broker_bootstrap.ensure import ensure_broker, provision_cluster
from broker_bootstrap.errors import BrokerError, TokenNotFoundError, TokenTimeoutError
from broker_bootstrap.k8s import KubeClients, get_k8s_clients

__all__ = [
    "Backoff",
    "BrokerError",
    "BrokerNames",
    "DEFAULT_NAMES",
    "KubeClients",
    "TokenNotFoundError",
    "TokenTimeoutError",
    "ensure_broker",
    "get_k8s_clients",
    "provision_cluster",
]

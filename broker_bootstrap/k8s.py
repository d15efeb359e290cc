"""Kubernetes client construction for the broker cluster."""
import logging
from typing import NamedTuple

from kubernetes import client, config

logger = logging.getLogger("k8s-broker")


class KubeClients(NamedTuple):
    core_v1: client.CoreV1Api
    rbac_v1: client.RbacAuthorizationV1Api
    apiextensions_v1: client.ApiextensionsV1Api


def load_config(kubeconfig: str | None = None, context: str | None = None) -> None:
    """In-cluster config when running in a pod, kubeconfig otherwise."""
    if kubeconfig:
        config.load_kube_config(config_file=kubeconfig, context=context)
        return
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config(context=context)


def get_k8s_clients(kubeconfig: str | None = None, context: str | None = None) -> KubeClients:
    """Return the API clients used to provision the broker."""
    load_config(kubeconfig, context)
    api_client = client.ApiClient()
    logger.debug(f"🔧 built API clients for {api_client.configuration.host}")
    return KubeClients(
        core_v1=client.CoreV1Api(api_client=api_client),
        rbac_v1=client.RbacAuthorizationV1Api(api_client=api_client),
        apiextensions_v1=client.ApiextensionsV1Api(api_client=api_client),
    )

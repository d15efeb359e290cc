"""
CRD prerequisites of the broker capabilities.

Each capability tag maps to an installer ``installer(apiextensions_v1)``
that creates or updates the CustomResourceDefinitions the capability's
records need on the broker. New capabilities register their own installer.
"""
import logging
from pathlib import Path
from typing import Callable, Iterable

import yaml
from kubernetes import client

from broker_bootstrap.errors import BrokerError, describe
from broker_bootstrap.resources import create_or_update_crd

logger = logging.getLogger("k8s-broker")

CONNECTIVITY = "connectivity"
SERVICE_DISCOVERY = "service-discovery"
GLOBALNET = "globalnet"

MANIFESTS_DIR = Path(__file__).parent / "manifests"

Installer = Callable[[client.ApiextensionsV1Api], None]


def load_manifests(filename: str) -> list[dict]:
    with open(MANIFESTS_DIR / filename) as f:
        return [doc for doc in yaml.safe_load_all(f) if doc]


def install_manifests(apiextensions_v1: client.ApiextensionsV1Api, filename: str) -> None:
    for manifest in load_manifests(filename):
        create_or_update_crd(apiextensions_v1, manifest)


def ensure_connectivity_crds(apiextensions_v1: client.ApiextensionsV1Api) -> None:
    install_manifests(apiextensions_v1, "connectivity.yaml")


def ensure_multicluster_crds(apiextensions_v1: client.ApiextensionsV1Api) -> None:
    """ServiceExport/ServiceImport CRDs, shared by service discovery and globalnet."""
    install_manifests(apiextensions_v1, "multicluster.yaml")


def ensure_broker_crd(apiextensions_v1: client.ApiextensionsV1Api) -> None:
    install_manifests(apiextensions_v1, "broker.yaml")


class CapabilityRegistry:
    """Capability tag -> CRD installer."""

    def __init__(self):
        self._installers: dict[str, Installer] = {}

    def register(self, tag: str, installer: Installer) -> None:
        self._installers[tag] = installer

    def get(self, tag: str) -> Installer | None:
        return self._installers.get(tag)

    def tags(self) -> list[str]:
        return sorted(self._installers)


DEFAULT_REGISTRY = CapabilityRegistry()
DEFAULT_REGISTRY.register(CONNECTIVITY, ensure_connectivity_crds)
DEFAULT_REGISTRY.register(SERVICE_DISCOVERY, ensure_multicluster_crds)
DEFAULT_REGISTRY.register(GLOBALNET, ensure_multicluster_crds)


def ensure_prerequisites(components: Iterable[str], apiextensions_v1: client.ApiextensionsV1Api,
                         registry: CapabilityRegistry = DEFAULT_REGISTRY) -> None:
    """
    Install the CRDs needed by each requested capability.

    Unknown tags are skipped with a warning so callers can pass capabilities
    that need nothing on the broker. An installer shared by several tags runs
    once per call.
    """
    done: list[Installer] = []
    for tag in components:
        installer = registry.get(tag)
        if installer is None:
            logger.warning(f"⚠️  no broker prerequisites known for component {tag!r}, skipping "
                           f"(known: {', '.join(registry.tags())})")
            continue
        if installer in done:
            continue
        logger.info(f"🧩 setting up broker prerequisites for component {tag!r}")
        try:
            installer(apiextensions_v1)
        except Exception as e:
            raise BrokerError(f"error setting up the {tag} requirements: {describe(e)}") from e
        done.append(installer)

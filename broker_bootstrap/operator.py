"""
kopf operator for the Broker custom resource.

Run with ``kopf run -m broker_bootstrap.operator``. Every Broker object is
reconciled by provisioning the broker RBAC in the object's namespace.
"""
import json
import logging
import os
from datetime import datetime, timezone

import kopf

from broker_bootstrap.config import BROKER_CRD_GROUP, BROKER_CRD_VERSION
from broker_bootstrap.crds import ensure_broker_crd
from broker_bootstrap.ensure import ensure_broker
from broker_bootstrap.errors import BrokerError
from broker_bootstrap.k8s import KubeClients, get_k8s_clients

RETRY_DELAY_SECONDS = int(os.environ.get("BROKER_RETRY_DELAY_SECONDS", "60"))

logger = logging.getLogger("k8s-broker")
audit_logger = logging.getLogger("k8s-broker-audit")

# Built once per process; kube config is loaded on first use
_CLIENT_CACHE: dict = {}


def broker_clients() -> KubeClients:
    """Return the cached API clients, building them on first call."""
    if "clients" not in _CLIENT_CACHE:
        _CLIENT_CACHE["clients"] = get_k8s_clients()
    return _CLIENT_CACHE["clients"]


def audit(event: str, name: str, **kwargs):
    """Emit a structured audit log line."""
    audit_logger.info(json.dumps({
        "audit": True,
        "event": event,
        "broker": name,
        "ts": datetime.now(timezone.utc).isoformat(),
        **kwargs,
    }))


@kopf.on.startup()
def startup(**kwargs):
    logger.info("🚀 k8s-broker operator starting up")
    ensure_broker_crd(broker_clients().apiextensions_v1)


@kopf.on.create(BROKER_CRD_GROUP, BROKER_CRD_VERSION, "brokers")
@kopf.on.resume(BROKER_CRD_GROUP, BROKER_CRD_VERSION, "brokers")
@kopf.on.update(BROKER_CRD_GROUP, BROKER_CRD_VERSION, "brokers", field="spec")
def reconcile_broker(name, namespace, spec, patch, **kwargs):
    """Provision the broker for a Broker object; retried later on failure."""
    components = list(spec.get("components", []))
    crds = spec.get("installCRDs", True)
    logger.info(f"📥 reconciling Broker [{name}] ns={namespace} components={components}")

    try:
        secret = ensure_broker(broker_clients(), components, crds, namespace)
    except BrokerError as e:
        logger.error(f"💥 [{name}] broker setup failed in ns={namespace}: {e}")
        patch.status["phase"] = "Failed"
        patch.status["message"] = str(e)
        audit("broker.failed", name, namespace=namespace, error=str(e))
        raise kopf.TemporaryError(str(e), delay=RETRY_DELAY_SECONDS) from e

    patch.status["phase"] = "Ready"
    patch.status["message"] = "Broker is ready"
    patch.status["adminTokenSecret"] = secret.metadata.name
    audit("broker.ready", name, namespace=namespace, components=components)

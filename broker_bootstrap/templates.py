"""
Desired-state templates for the broker RBAC surface.

Pure constructors, no API calls. Names are the caller's responsibility.
"""
from kubernetes import client

from broker_bootstrap.config import (
    BROKER_CRD_GROUP, CONNECTIVITY_GROUP, MANAGED_BY, MANAGED_BY_LABEL, MULTICLUSTER_GROUP,
)

_ALL_VERBS = ["create", "get", "list", "watch", "patch", "update", "delete"]

# ---------------------------------------------------------------------------
# RBAC rules
# ---------------------------------------------------------------------------
_ADMIN_RULES = [
    # Connectivity and broker resources
    {"apiGroups": [CONNECTIVITY_GROUP, BROKER_CRD_GROUP], "resources": ["*"],
     "verbs": _ALL_VERBS},
    # Service discovery records
    {"apiGroups": [MULTICLUSTER_GROUP], "resources": ["*"],
     "verbs": _ALL_VERBS},
    {"apiGroups": ["discovery.k8s.io"], "resources": ["endpointslices", "endpointslices/restricted"],
     "verbs": _ALL_VERBS},
    # Enroll new clusters: per-cluster SAs, their token secrets and bindings
    {"apiGroups": [""], "resources": ["serviceaccounts", "secrets", "configmaps"],
     "verbs": ["create", "get", "list", "update", "delete"]},
    {"apiGroups": ["rbac.authorization.k8s.io"], "resources": ["rolebindings"],
     "verbs": ["create", "get", "list", "delete"]},
]

_CLUSTER_RULES = [
    {"apiGroups": [CONNECTIVITY_GROUP], "resources": ["clusters", "endpoints"],
     "verbs": _ALL_VERBS},
    {"apiGroups": [MULTICLUSTER_GROUP], "resources": ["*"],
     "verbs": _ALL_VERBS},
    {"apiGroups": ["discovery.k8s.io"], "resources": ["endpointslices", "endpointslices/restricted"],
     "verbs": _ALL_VERBS},
    {"apiGroups": [""], "resources": ["secrets"],
     "verbs": ["get"]},
]


def _metadata(name: str, namespace: str | None = None) -> client.V1ObjectMeta:
    return client.V1ObjectMeta(name=name, namespace=namespace, labels={MANAGED_BY_LABEL: MANAGED_BY})


def _rules(raw: list[dict]) -> list[client.V1PolicyRule]:
    return [
        client.V1PolicyRule(
            api_groups=list(r["apiGroups"]),
            resources=list(r["resources"]),
            verbs=list(r["verbs"]),
        )
        for r in raw
    ]


def new_namespace(name: str) -> client.V1Namespace:
    return client.V1Namespace(metadata=_metadata(name))


def new_service_account(name: str) -> client.V1ServiceAccount:
    return client.V1ServiceAccount(metadata=_metadata(name))


def new_admin_role(name: str) -> client.V1Role:
    """Role used to manage the broker: enrolling clusters and all broker records."""
    return client.V1Role(metadata=_metadata(name), rules=_rules(_ADMIN_RULES))


def new_cluster_role(name: str) -> client.V1Role:
    """Role granted to every registering cluster."""
    return client.V1Role(metadata=_metadata(name), rules=_rules(_CLUSTER_RULES))


def role_binding_name(service_account: str, role: str) -> str:
    return f"{role}-{service_account}"


def new_role_binding(service_account: str, role: str, namespace: str) -> client.V1RoleBinding:
    return client.V1RoleBinding(
        metadata=_metadata(role_binding_name(service_account, role), namespace),
        role_ref=client.V1RoleRef(
            api_group="rbac.authorization.k8s.io",
            kind="Role",
            name=role,
        ),
        subjects=[client.RbacV1Subject(kind="ServiceAccount", name=service_account, namespace=namespace)],
    )

"""
In-memory stand-ins for the kubernetes API clients used by the broker.

They keep objects per (namespace, name), answer 409 on duplicate creates and
404 on missing reads, and materialize service account token secrets after a
configurable number of lookups, like the token controller does.
"""
import base64
from collections import Counter
from types import SimpleNamespace

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from broker_bootstrap.config import Backoff
from broker_bootstrap.k8s import KubeClients
from broker_bootstrap.tokens import SA_NAME_ANNOTATION, SA_TOKEN_TYPE

# Zero-length sleeps so waits never slow the suite down.
FAST_BACKOFF = Backoff(steps=10, duration=0.0, factor=1.2, jitter=1.0)


def _conflict(name):
    return ApiException(status=409, reason=f"Conflict: {name} already exists")


def _not_found(name):
    return ApiException(status=404, reason=f"NotFound: {name}")


class _FakeApi:
    def __init__(self):
        self.fail: dict[str, Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self.created: list[tuple[str, str]] = []

    def _call(self, method: str, name: str):
        self.calls.append((method, name))
        if method in self.fail:
            raise self.fail[method]


class FakeCoreV1(_FakeApi):
    def __init__(self):
        super().__init__()
        self.namespaces: dict[str, client.V1Namespace] = {}
        self.service_accounts: dict[tuple, client.V1ServiceAccount] = {}
        self.secrets: dict[tuple, client.V1Secret] = {}
        # SA name -> lookup on which its token appears; None means never
        self.token_ready_after: dict[str, int | None] = {}
        self.legacy_token_refs = True
        self.lookups: Counter = Counter()

    def create_namespace(self, body):
        name = body.metadata.name
        self._call("create_namespace", name)
        if name in self.namespaces:
            raise _conflict(name)
        self.namespaces[name] = body
        self.created.append(("Namespace", name))
        return body

    def create_namespaced_service_account(self, namespace, body):
        name = body.metadata.name
        self._call("create_namespaced_service_account", name)
        if (namespace, name) in self.service_accounts:
            raise _conflict(name)
        body.metadata.namespace = namespace
        self.service_accounts[(namespace, name)] = body
        self.created.append(("ServiceAccount", name))
        return body

    def read_namespaced_service_account(self, name, namespace):
        self._call("read_namespaced_service_account", name)
        sa = self.service_accounts.get((namespace, name))
        if sa is None:
            raise _not_found(name)
        self.lookups[name] += 1
        ready_after = self.token_ready_after.get(name, 1)
        if ready_after is not None and self.lookups[name] >= ready_after:
            self._materialize_token(sa, namespace)
        return sa

    def _materialize_token(self, sa, namespace):
        secret_name = f"{sa.metadata.name}-token-x7k2p"
        if (namespace, secret_name) in self.secrets:
            return
        self.secrets[(namespace, secret_name)] = client.V1Secret(
            metadata=client.V1ObjectMeta(
                name=secret_name,
                namespace=namespace,
                annotations={SA_NAME_ANNOTATION: sa.metadata.name},
            ),
            type=SA_TOKEN_TYPE,
            data={
                "token": base64.b64encode(f"token-of-{sa.metadata.name}".encode()).decode(),
                "ca.crt": base64.b64encode(b"-----BEGIN CERTIFICATE-----").decode(),
            },
        )
        if self.legacy_token_refs:
            sa.secrets = [client.V1ObjectReference(name=secret_name)]

    def read_namespaced_secret(self, name, namespace):
        self._call("read_namespaced_secret", name)
        secret = self.secrets.get((namespace, name))
        if secret is None:
            raise _not_found(name)
        return secret

    def list_namespaced_secret(self, namespace, field_selector=None):
        self._call("list_namespaced_secret", namespace)
        items = [s for (ns, _), s in self.secrets.items() if ns == namespace]
        if field_selector:
            wanted = field_selector.removeprefix("type=")
            items = [s for s in items if s.type == wanted]
        return client.V1SecretList(items=items)


class FakeRbacV1(_FakeApi):
    def __init__(self):
        super().__init__()
        self.roles: dict[tuple, client.V1Role] = {}
        self.role_bindings: dict[tuple, client.V1RoleBinding] = {}
        self.replaced: list[str] = []
        # Writes applied by "another client" right before our next replace
        self.concurrent_writes: list[client.V1Role] = []

    def _store_role(self, namespace, body, version):
        body.metadata.resource_version = str(version)
        self.roles[(namespace, body.metadata.name)] = body

    def create_namespaced_role(self, namespace, body):
        name = body.metadata.name
        self._call("create_namespaced_role", name)
        if (namespace, name) in self.roles:
            raise _conflict(name)
        self._store_role(namespace, body, 1)
        self.created.append(("Role", name))
        return body

    def read_namespaced_role(self, name, namespace):
        self._call("read_namespaced_role", name)
        role = self.roles.get((namespace, name))
        if role is None:
            raise _not_found(name)
        metadata = client.V1ObjectMeta(
            name=role.metadata.name,
            namespace=namespace,
            labels=role.metadata.labels,
            resource_version=role.metadata.resource_version,
        )
        return client.V1Role(metadata=metadata, rules=list(role.rules))

    def replace_namespaced_role(self, name, namespace, body):
        self._call("replace_namespaced_role", name)
        current = self.roles[(namespace, name)]
        if self.concurrent_writes:
            other = self.concurrent_writes.pop(0)
            self._store_role(namespace, other, int(current.metadata.resource_version) + 1)
            current = other
        if body.metadata.resource_version != current.metadata.resource_version:
            raise ApiException(status=409, reason="Conflict: the object has been modified")
        self._store_role(namespace, body, int(current.metadata.resource_version) + 1)
        self.replaced.append(name)
        return body

    def create_namespaced_role_binding(self, namespace, body):
        name = body.metadata.name
        self._call("create_namespaced_role_binding", name)
        if (namespace, name) in self.role_bindings:
            raise _conflict(name)
        self.role_bindings[(namespace, name)] = body
        self.created.append(("RoleBinding", name))
        return body


class FakeApiextensionsV1(_FakeApi):
    def __init__(self):
        super().__init__()
        self.crds: dict[str, dict] = {}
        self.versions: Counter = Counter()

    def create_custom_resource_definition(self, body):
        name = body["metadata"]["name"]
        self._call("create_custom_resource_definition", name)
        if name in self.crds:
            raise _conflict(name)
        self.crds[name] = body
        self.versions[name] = 1
        self.created.append(("CustomResourceDefinition", name))
        return body

    def read_custom_resource_definition(self, name):
        self._call("read_custom_resource_definition", name)
        if name not in self.crds:
            raise _not_found(name)
        return SimpleNamespace(metadata=SimpleNamespace(name=name, resource_version=str(self.versions[name])))

    def replace_custom_resource_definition(self, name, body):
        self._call("replace_custom_resource_definition", name)
        if body["metadata"].get("resourceVersion") != str(self.versions[name]):
            raise ApiException(status=409, reason="Conflict: stale resourceVersion")
        self.crds[name] = body
        self.versions[name] += 1
        return body


@pytest.fixture
def clients() -> KubeClients:
    return KubeClients(core_v1=FakeCoreV1(), rbac_v1=FakeRbacV1(), apiextensions_v1=FakeApiextensionsV1())


def created(clients: KubeClients) -> list[tuple[str, str]]:
    return clients.core_v1.created + clients.rbac_v1.created + clients.apiextensions_v1.created

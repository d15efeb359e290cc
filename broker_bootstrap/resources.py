"""
Idempotent create helpers for broker resources.

Every provisioning step goes through these helpers: a 409 from the API
server means the resource is already there and counts as success.
"""
import logging

from kubernetes import client
from kubernetes.client.rest import ApiException

from broker_bootstrap.errors import BrokerError, describe

logger = logging.getLogger("k8s-broker")

# Re-reads allowed when a role replace conflicts with a concurrent write
ROLE_UPDATE_ATTEMPTS = 5


def _kind_and_name(body) -> tuple[str, str]:
    if isinstance(body, dict):
        return body.get("kind", "resource"), body.get("metadata", {}).get("name", "")
    return type(body).__name__.removeprefix("V1"), body.metadata.name


def create_or_ignore_exists(create, body, error_message: str, **kwargs) -> bool:
    """
    Call a kubernetes client ``create_*`` method with ``body``.

    Returns True if the resource was created and False if it already existed.
    Any other failure is raised as BrokerError prefixed with ``error_message``.
    """
    kind, name = _kind_and_name(body)
    try:
        create(body=body, **kwargs)
    except ApiException as e:
        if e.status == 409:
            logger.info(f"👌 {kind}={name} already exists")
            return False
        raise BrokerError(f"{error_message}: {describe(e)}") from e
    except Exception as e:
        raise BrokerError(f"{error_message}: {describe(e)}") from e
    logger.info(f"✨ created {kind}={name}")
    return True


def create_or_update_role(rbac_v1: client.RbacAuthorizationV1Api, namespace: str,
                          role: client.V1Role, error_message: str) -> bool:
    """
    Create ``role`` or overwrite the rules of the existing one.

    The stored rules always end up equal to ``role.rules``. A replace that
    loses a race with another writer (409 on the resourceVersion) is retried
    on a fresh read, so concurrent writers with different rules: last one wins.
    """
    name = role.metadata.name
    try:
        rbac_v1.create_namespaced_role(namespace=namespace, body=role)
        logger.info(f"🛡️  created Role={name} in ns={namespace}")
        return True
    except ApiException as e:
        if e.status != 409:
            raise BrokerError(f"{error_message}: {describe(e)}") from e
    except Exception as e:
        raise BrokerError(f"{error_message}: {describe(e)}") from e

    for attempt in range(1, ROLE_UPDATE_ATTEMPTS + 1):
        try:
            existing = rbac_v1.read_namespaced_role(name=name, namespace=namespace)
            if existing.rules == role.rules:
                logger.info(f"👌 Role={name} in ns={namespace} is up to date")
                return False
            existing.rules = role.rules
            rbac_v1.replace_namespaced_role(name=name, namespace=namespace, body=existing)
            break
        except ApiException as e:
            if e.status == 409 and attempt < ROLE_UPDATE_ATTEMPTS:
                logger.info(f"🔁 Role={name} in ns={namespace} changed underneath us, re-reading")
                continue
            raise BrokerError(f"{error_message}: {describe(e)}") from e
        except Exception as e:
            raise BrokerError(f"{error_message}: {describe(e)}") from e
    logger.info(f"🛡️  updated Role={name} in ns={namespace}")
    return False


def create_or_update_crd(apiextensions_v1: client.ApiextensionsV1Api, manifest: dict) -> bool:
    """Create a CustomResourceDefinition from a manifest dict or replace the existing one."""
    name = manifest["metadata"]["name"]
    try:
        apiextensions_v1.create_custom_resource_definition(body=manifest)
        logger.info(f"📜 created CRD={name}")
        return True
    except ApiException as e:
        if e.status != 409:
            raise BrokerError(f"error creating CRD {name}: {describe(e)}") from e
    except Exception as e:
        raise BrokerError(f"error creating CRD {name}: {describe(e)}") from e

    try:
        existing = apiextensions_v1.read_custom_resource_definition(name=name)
        body = dict(manifest)
        body["metadata"] = {**manifest["metadata"], "resourceVersion": existing.metadata.resource_version}
        apiextensions_v1.replace_custom_resource_definition(name=name, body=body)
    except Exception as e:
        raise BrokerError(f"error updating CRD {name}: {describe(e)}") from e
    logger.info(f"📜 updated CRD={name}")
    return False

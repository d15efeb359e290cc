"""
Service account token lookup and bounded polling.

The API server materializes service account token secrets asynchronously,
so right after a ServiceAccount is created its token is usually missing.
``wait_for_client_token`` polls with exponential backoff and jitter:

    attempts = 10, sleeps between attempts = 5s * 1.2**n (n = 0..8)
    nominal total ~104s, worst case with jitter ~208s (Backoff.max_wait())
"""
import base64
import logging
import random
import time
from typing import Callable

from kubernetes import client

from broker_bootstrap.config import TOKEN_BACKOFF, Backoff
from broker_bootstrap.errors import TokenNotFoundError, TokenTimeoutError, describe

logger = logging.getLogger("k8s-broker")

SA_TOKEN_TYPE = "kubernetes.io/service-account-token"
SA_NAME_ANNOTATION = "kubernetes.io/service-account.name"


def get_client_token_secret(core_v1: client.CoreV1Api, namespace: str, service_account: str) -> client.V1Secret:
    """
    Return the token secret of ``service_account``.

    Legacy clusters list the token secret on the ServiceAccount itself;
    newer ones only annotate a secret of type service-account-token.
    Raises TokenNotFoundError when neither is there yet.
    """
    sa = core_v1.read_namespaced_service_account(name=service_account, namespace=namespace)
    prefix = f"{service_account}-token-"
    for ref in sa.secrets or []:
        if ref.name and ref.name.startswith(prefix):
            return core_v1.read_namespaced_secret(name=ref.name, namespace=namespace)

    secrets = core_v1.list_namespaced_secret(namespace=namespace, field_selector=f"type={SA_TOKEN_TYPE}")
    for secret in secrets.items:
        annotations = secret.metadata.annotations or {}
        if annotations.get(SA_NAME_ANNOTATION) == service_account and (secret.data or {}).get("token"):
            return secret

    raise TokenNotFoundError(f"secret for service account {namespace}/{service_account} not found")


def poll(backoff: Backoff, attempt: Callable[[], tuple], sleep: Callable[[float], None] = time.sleep,
         rand: Callable[[], float] = random.random) -> tuple:
    """
    Run ``attempt`` until it reports success or ``backoff.steps`` runs are spent.

    ``attempt`` returns ``(result, error)``; a None error means success.
    Returns ``(result, last_error, attempts)``.
    """
    delays = backoff.delays(rand)
    last_error = None
    for n in range(1, backoff.steps + 1):
        result, last_error = attempt()
        if last_error is None:
            return result, None, n
        if n < backoff.steps:
            sleep(next(delays))
    return None, last_error, backoff.steps


def wait_for_client_token(core_v1: client.CoreV1Api, service_account: str, namespace: str,
                          backoff: Backoff = TOKEN_BACKOFF, sleep: Callable[[float], None] = time.sleep,
                          rand: Callable[[], float] = random.random) -> client.V1Secret:
    """Poll for the token secret of ``service_account``; TokenTimeoutError when it never shows up."""
    logger.info(f"⏳ waiting for token of ServiceAccount={service_account} in ns={namespace} "
                f"(up to {backoff.steps} attempts, at most {backoff.max_wait():.0f}s)")

    def attempt():
        try:
            return get_client_token_secret(core_v1, namespace, service_account), None
        except Exception as e:
            logger.debug(f"🔁 token for ServiceAccount={service_account} not ready: {describe(e)}")
            return None, e

    secret, last_error, attempts = poll(backoff, attempt, sleep=sleep, rand=rand)
    if last_error is not None:
        logger.warning(f"⌛ gave up on token of ServiceAccount={service_account} in ns={namespace} "
                       f"after {attempts} attempts: {describe(last_error)}")
        raise TokenTimeoutError(service_account, namespace, attempts, last_error) from last_error

    logger.info(f"🎟️  token secret={secret.metadata.name} ready for ServiceAccount={service_account} "
                f"(attempt {attempts})")
    return secret


def decode_token_secret(secret: client.V1Secret) -> tuple[str, str]:
    """Return (token, ca_pem) from a service account token secret."""
    data = secret.data or {}
    token = base64.b64decode(data.get("token", "")).decode("utf-8")
    ca = base64.b64decode(data.get("ca.crt", "")).decode("utf-8")
    return token, ca

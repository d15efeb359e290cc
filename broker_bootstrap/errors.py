"""Exceptions raised while provisioning the broker."""
from kubernetes.client.rest import ApiException


def describe(err: BaseException) -> str:
    """One-line description of an error, without the API response dump."""
    if isinstance(err, ApiException):
        return f"({err.status}) {err.reason}"
    return str(err) or type(err).__name__


class BrokerError(Exception):
    """A provisioning step failed. The message names the step."""


class TokenNotFoundError(BrokerError):
    """The service account token secret has not been materialized yet."""


class TokenTimeoutError(BrokerError):
    """All token lookup attempts failed; ``last_error`` is the final one seen."""

    def __init__(self, service_account: str, namespace: str, attempts: int, last_error: BaseException):
        self.service_account = service_account
        self.namespace = namespace
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"timed out waiting for the token of service account {namespace}/{service_account} "
            f"after {attempts} attempts: {describe(last_error)}"
        )

"""
Configuration for the k8s-broker bootstrapper.

Well-known resource names live in ``BrokerNames`` and are passed explicitly
to the provisioning functions. Deployment settings come from environment
variables with sensible defaults.
"""
import os
import random
from dataclasses import dataclass
from typing import Callable, Iterator

# ---------------------------------------------------------------------------
# Configuration from environment
# ---------------------------------------------------------------------------
BROKER_NAMESPACE = os.environ.get("BROKER_NAMESPACE", "k8s-broker")
BROKER_CRD_GROUP = "k8s-broker.io"
BROKER_CRD_VERSION = "v1alpha1"
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY = "k8s-broker"
CONNECTIVITY_GROUP = "connectivity.k8s-broker.io"
MULTICLUSTER_GROUP = "multicluster.x-k8s.io"

TOKEN_WAIT_STEPS = int(os.environ.get("TOKEN_WAIT_STEPS", "10"))
TOKEN_WAIT_INITIAL_SECONDS = float(os.environ.get("TOKEN_WAIT_INITIAL_SECONDS", "5"))
TOKEN_WAIT_FACTOR = float(os.environ.get("TOKEN_WAIT_FACTOR", "1.2"))
TOKEN_WAIT_JITTER = float(os.environ.get("TOKEN_WAIT_JITTER", "1.0"))


@dataclass(frozen=True)
class BrokerNames:
    """Stable names of the broker RBAC resources shared by every installation."""

    admin_sa: str = "k8s-broker-admin"
    admin_role: str = "k8s-broker-admin"
    cluster_role: str = "k8s-broker-cluster"
    default_cluster_sa: str = "k8s-broker-client"
    cluster_sa_prefix: str = "cluster-"

    def cluster_sa_name(self, cluster_id: str) -> str:
        return f"{self.cluster_sa_prefix}{cluster_id}"


DEFAULT_NAMES = BrokerNames()


@dataclass(frozen=True)
class Backoff:
    """
    Exponential backoff policy.

    ``steps`` attempts are made with ``steps - 1`` sleeps between them. The
    n-th sleep (0-based) is ``duration * factor**n`` stretched by a random
    fraction of up to ``jitter`` of itself, so every sleep lies in
    ``[d, d * (1 + jitter))``.
    """

    steps: int = 10
    duration: float = 5.0
    factor: float = 1.2
    jitter: float = 1.0

    def __post_init__(self):
        if self.steps < 1:
            raise ValueError(f"backoff needs at least one attempt, got steps={self.steps}")
        if self.duration < 0 or self.jitter < 0:
            raise ValueError(f"backoff duration and jitter must not be negative, got {self.duration}, {self.jitter}")
        if self.factor < 1:
            raise ValueError(f"backoff factor must be at least 1, got {self.factor}")

    def delays(self, rand: Callable[[], float] = random.random) -> Iterator[float]:
        for n in range(self.steps - 1):
            base = self.duration * self.factor ** n
            yield base + rand() * self.jitter * base

    def nominal_wait(self) -> float:
        """Total sleep time with no jitter applied."""
        return sum(self.duration * self.factor ** n for n in range(self.steps - 1))

    def max_wait(self) -> float:
        """Upper bound of the total sleep time whatever the jitter draws are."""
        return self.nominal_wait() * (1 + self.jitter)


# With the defaults: nominal ~104s, never more than ~208s.
TOKEN_BACKOFF = Backoff(
    steps=TOKEN_WAIT_STEPS,
    duration=TOKEN_WAIT_INITIAL_SECONDS,
    factor=TOKEN_WAIT_FACTOR,
    jitter=TOKEN_WAIT_JITTER,
)

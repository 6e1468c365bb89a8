"""
In-memory collaborators — prototype backends for every reconciler contract.

Each backend records what it was asked to do so callers can inspect side
effects, and can be told to fail like unreachable infrastructure would.
In production these would wrap the cluster API.
"""

from typing import Dict, List, Optional, Set, Tuple

from volume_reconciler.errors import (
    MalformedInputError,
    NotFoundError,
    UpstreamUnavailableError,
)
from volume_reconciler.hashing.ledger import compute_stable_hash
from volume_reconciler.models.workload import ObservedWorkload, WorkloadSpec

CA_BUNDLE_KEY = "tls-ca-bundle.pem"


def _fail_if_set(reason: Optional[str]) -> None:
    if reason:
        raise UpstreamUnavailableError(reason)


class InMemorySecretProvider:
    def __init__(self):
        self._secrets: Dict[Tuple[str, str], Dict[str, bytes]] = {}
        self.fail_with: Optional[str] = None
        self.lookups: List[str] = []

    def put(self, name: str, namespace: str, data: Dict[str, bytes]) -> None:
        self._secrets[(namespace, name)] = dict(data)

    def delete(self, name: str, namespace: str) -> None:
        self._secrets.pop((namespace, name), None)

    def resolve(self, name: str, namespace: str) -> Tuple[Dict[str, bytes], bool]:
        self.lookups.append(name)
        _fail_if_set(self.fail_with)
        data = self._secrets.get((namespace, name))
        if data is None:
            return {}, False
        return dict(data), True


class InMemoryConfigWriter:
    """Stores generated config bundles; the hash covers their content."""

    def __init__(self):
        self.configs: Dict[Tuple[str, str], Dict[str, str]] = {}
        self.labels: Dict[Tuple[str, str], Dict[str, str]] = {}
        self.writes = 0
        self.fail_with: Optional[str] = None

    def ensure_config(
        self,
        name: str,
        namespace: str,
        data: Dict[str, str],
        labels: Dict[str, str],
    ) -> str:
        _fail_if_set(self.fail_with)
        key = (namespace, name)
        if self.configs.get(key) != data or self.labels.get(key) != labels:
            self.configs[key] = dict(data)
            self.labels[key] = dict(labels)
            self.writes += 1
        return compute_stable_hash(data)


class InMemoryTLSValidator:
    """Validates CA bundles held by a secret provider."""

    def __init__(self, secrets: InMemorySecretProvider):
        self._secrets = secrets

    def validate_ca_bundle(self, name: str, namespace: str) -> str:
        data, existed = self._secrets.resolve(name, namespace)
        if not existed:
            raise NotFoundError(f"secret {name} not found")
        bundle = data.get(CA_BUNDLE_KEY)
        if bundle is None:
            raise MalformedInputError(
                f"field {CA_BUNDLE_KEY} not found in secret {name}"
            )
        text = bundle.decode("utf-8", errors="replace")
        if "BEGIN CERTIFICATE" not in text or "END CERTIFICATE" not in text:
            raise MalformedInputError(
                f"{CA_BUNDLE_KEY} in secret {name} does not look like a PEM certificate"
            )
        return compute_stable_hash({CA_BUNDLE_KEY: bundle})


class InMemoryResourceApplier:
    """
    Keeps one workload per name. A changed spec bumps the generation; the
    simulated workload controller catches up immediately unless `lagging`.
    """

    def __init__(self):
        self.specs: Dict[str, WorkloadSpec] = {}
        self.observed: Dict[str, ObservedWorkload] = {}
        self.applies = 0
        self.updates = 0
        self.lagging = False
        self.requires_wait = False
        self.ready_replicas: Optional[int] = None
        self.fail_with: Optional[str] = None

    def create_or_update(self, spec: WorkloadSpec) -> Tuple[ObservedWorkload, bool]:
        self.applies += 1
        _fail_if_set(self.fail_with)
        current = self.observed.get(spec.name)
        generation = current.generation if current else 0
        if self.specs.get(spec.name) != spec:
            self.specs[spec.name] = spec.model_copy(deep=True)
            generation += 1
            self.updates += 1

        if self.lagging:
            observed_generation = current.observed_generation if current else 0
        else:
            observed_generation = generation

        ready = spec.replicas if self.ready_replicas is None else self.ready_replicas
        observed = ObservedWorkload(
            name=spec.name,
            generation=generation,
            observed_generation=observed_generation,
            ready_replicas=ready,
        )
        self.observed[spec.name] = observed
        return observed.model_copy(), self.requires_wait


class InMemoryNetworkAttachmentOracle:
    """Known attachment definitions plus the IPs pods report per attachment."""

    def __init__(self):
        self.definitions: Set[Tuple[str, str]] = set()
        self.pod_ips: Dict[str, List[str]] = {}
        self.fail_with: Optional[str] = None

    def define(self, name: str, namespace: str) -> None:
        self.definitions.add((namespace, name))

    def exists(self, name: str, namespace: str) -> bool:
        _fail_if_set(self.fail_with)
        return (namespace, name) in self.definitions

    def verify_status(
        self,
        attachments: List[str],
        labels: Dict[str, str],
        expected_ready_count: int,
    ) -> Tuple[bool, Dict[str, List[str]]]:
        _fail_if_set(self.fail_with)
        ips: Dict[str, List[str]] = {}
        ready = True
        for name in attachments:
            assigned = list(self.pod_ips.get(name, []))
            ips[name] = assigned
            if len(assigned) != expected_ready_count:
                ready = False
        return ready, ips

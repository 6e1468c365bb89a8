"""
Collaborator contracts consumed by the reconciler.

The reconciler never talks to infrastructure directly; every read and write
goes through one of these pluggable backends. Infrastructure failures are
reported as `UpstreamUnavailableError`, missing objects as `NotFoundError`
(where the contract says so), lost write races as `ConflictError`.

Every call must be bounded by the backend's own timeout. The reconciler only
checks its cancel token between phases, so an in-flight call is aborted by
that timeout (or by a backend sharing the same token), never by the reconciler.
"""

from typing import Dict, List, Protocol, Tuple

from volume_reconciler.models.instance import VolumeInstance, VolumeStatus
from volume_reconciler.models.workload import ObservedWorkload, WorkloadSpec


class StateStore(Protocol):
    """Holds desired state and persisted status, with optimistic concurrency."""

    def get(self, key: str) -> VolumeInstance: ...

    def patch_status(
        self, key: str, status: VolumeStatus, resource_version: int
    ) -> VolumeInstance: ...

    def patch_finalizers(
        self, key: str, finalizers: List[str], resource_version: int
    ) -> VolumeInstance: ...


class SecretProvider(Protocol):
    def resolve(self, name: str, namespace: str) -> Tuple[Dict[str, bytes], bool]: ...


class ConfigWriter(Protocol):
    """Writes the generated service config bundle; returns its content hash."""

    def ensure_config(
        self,
        name: str,
        namespace: str,
        data: Dict[str, str],
        labels: Dict[str, str],
    ) -> str: ...


class TLSValidator(Protocol):
    def validate_ca_bundle(self, name: str, namespace: str) -> str: ...


class WorkloadBuilder(Protocol):
    def __call__(
        self,
        instance: VolumeInstance,
        input_hash: str,
        labels: Dict[str, str],
        annotations: Dict[str, str],
        uses_lvm: bool,
    ) -> WorkloadSpec: ...


class ResourceApplier(Protocol):
    def create_or_update(self, spec: WorkloadSpec) -> Tuple[ObservedWorkload, bool]: ...


class NetworkAttachmentOracle(Protocol):
    def exists(self, name: str, namespace: str) -> bool: ...

    def verify_status(
        self,
        attachments: List[str],
        labels: Dict[str, str],
        expected_ready_count: int,
    ) -> Tuple[bool, Dict[str, List[str]]]: ...


class CancelToken(Protocol):
    """
    Anything with `is_set()`, e.g. `threading.Event`.

    Checked before every phase. Backends that want to abort a call early may
    watch the same token.
    """

    def is_set(self) -> bool: ...


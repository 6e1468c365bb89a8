"""
Volume State Store — holds desired state and the status the reconciler publishes.

Updated by: the declaring user (spec, deletion) + the reconciler (status, finalizers)
Queried by: the reconciler, once at the start of every pass
"""

from datetime import datetime
from typing import Dict, List, Optional

from volume_reconciler.errors import ConflictError, NotFoundError
from volume_reconciler.models.instance import VolumeInstance, VolumeSpec, VolumeStatus


class InMemoryStateStore:
    """
    In-memory state store for the prototype.
    Every write bumps `resource_version`; writes carrying a stale version
    raise ConflictError. Production would back this with the cluster API.
    """

    def __init__(self):
        self._instances: Dict[str, VolumeInstance] = {}
        self.status_patches = 0
        self.finalizer_patches = 0

    def upsert(self, instance: VolumeInstance) -> VolumeInstance:
        """Insert or replace an instance, as the declaring user would."""
        existing = self._instances.get(instance.key)
        stored = instance.model_copy(deep=True)
        if existing is not None:
            stored.resource_version = existing.resource_version + 1
        self._instances[stored.key] = stored
        return stored.model_copy(deep=True)

    def update_spec(self, key: str, spec: VolumeSpec) -> VolumeInstance:
        """Change the desired state; bumps generation like a spec edit would."""
        stored = self._require(key)
        stored.spec = spec.model_copy(deep=True)
        stored.generation += 1
        stored.resource_version += 1
        return stored.model_copy(deep=True)

    def get(self, key: str) -> VolumeInstance:
        return self._require(key).model_copy(deep=True)

    def list(self) -> List[VolumeInstance]:
        return [i.model_copy(deep=True) for i in self._instances.values()]

    def mark_for_deletion(
        self, key: str, when: Optional[datetime] = None
    ) -> VolumeInstance:
        """Request deletion. Removal happens once no finalizers remain."""
        stored = self._require(key)
        if not stored.finalizers:
            del self._instances[key]
            return stored.model_copy(deep=True)
        stored.deletion_timestamp = when or datetime.utcnow()
        stored.resource_version += 1
        return stored.model_copy(deep=True)

    def patch_status(
        self, key: str, status: VolumeStatus, resource_version: int
    ) -> VolumeInstance:
        stored = self._require(key)
        self._check_version(stored, resource_version)
        stored.status = status.model_copy(deep=True)
        stored.resource_version += 1
        self.status_patches += 1
        return stored.model_copy(deep=True)

    def patch_finalizers(
        self, key: str, finalizers: List[str], resource_version: int
    ) -> VolumeInstance:
        stored = self._require(key)
        self._check_version(stored, resource_version)
        stored.finalizers = list(finalizers)
        stored.resource_version += 1
        self.finalizer_patches += 1
        result = stored.model_copy(deep=True)
        if stored.deletion_timestamp is not None and not stored.finalizers:
            del self._instances[key]
        return result

    def _require(self, key: str) -> VolumeInstance:
        instance = self._instances.get(key)
        if instance is None:
            raise NotFoundError(f"volume instance {key} not found")
        return instance

    def _check_version(self, stored: VolumeInstance, resource_version: int) -> None:
        if stored.resource_version != resource_version:
            raise ConflictError(
                f"volume instance {stored.key} was modified: "
                f"have version {resource_version}, stored {stored.resource_version}"
            )

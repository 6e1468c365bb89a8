"""Reconciler configuration and per-invocation result."""

from typing import Optional

from pydantic import BaseModel, Field


class ReconcilerConfig(BaseModel):
    """Configuration for the volume reconciler."""

    short_requeue_seconds: float = 5
    normal_requeue_seconds: float = 10
    finalizer: str = "openstack.org/cindervolume"
    service_name: str = "cinder"
    component_name: str = "cinder-volume"
    label_domain: str = "openstack.org"
    input_hash_name: str = "input"
    max_conflict_retries: int = Field(ge=0, default=3)
    lvm_driver_suffix: str = ".LVMVolumeDriver"

    @property
    def group_label(self) -> str:
        return f"{self.service_name}.{self.label_domain}"


class ReconcileResult(BaseModel):
    """What a trigger source gets back from one reconcile pass."""

    requeue: bool = False
    requeue_after: Optional[float] = None   # Seconds; None relies on the next trigger

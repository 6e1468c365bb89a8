"""Volume reconciler data models."""

from volume_reconciler.models.conditions import Condition, ConditionStatus, Severity
from volume_reconciler.models.instance import (
    PasswordSelector,
    TLSSpec,
    VolumeInstance,
    VolumeSpec,
    VolumeStatus,
    instance_key,
)
from volume_reconciler.models.reconciler import ReconcileResult, ReconcilerConfig
from volume_reconciler.models.workload import ObservedWorkload, WorkloadSpec

__all__ = [
    "Condition",
    "ConditionStatus",
    "ObservedWorkload",
    "PasswordSelector",
    "ReconcileResult",
    "ReconcilerConfig",
    "Severity",
    "TLSSpec",
    "VolumeInstance",
    "VolumeSpec",
    "VolumeStatus",
    "WorkloadSpec",
    "instance_key",
]

"""
Lifecycle Guard — finalizer handling that gates deletion against convergence.

The finalizer is present while the reconciler still owns cleanup for an
instance: attached once normal convergence starts, removed exactly once when
deletion processing completes.
"""

import logging

from volume_reconciler.models.instance import VolumeInstance

logger = logging.getLogger(__name__)


class LifecycleGuard:
    def __init__(self, finalizer: str):
        self.finalizer = finalizer

    def is_deleting(self, instance: VolumeInstance) -> bool:
        return instance.deletion_timestamp is not None

    def ensure_finalizer(self, instance: VolumeInstance) -> bool:
        """Attach the finalizer to a live instance. Returns True if it was added."""
        if self.is_deleting(instance) or self.finalizer in instance.finalizers:
            return False
        instance.finalizers = instance.finalizers + [self.finalizer]
        logger.info("Added finalizer %s to '%s'", self.finalizer, instance.name)
        return True

    def release(self, instance: VolumeInstance) -> bool:
        """Drop the finalizer. Returns True only on the call that removed it."""
        if self.finalizer not in instance.finalizers:
            return False
        instance.finalizers = [f for f in instance.finalizers if f != self.finalizer]
        logger.info("Removed finalizer %s from '%s'", self.finalizer, instance.name)
        return True

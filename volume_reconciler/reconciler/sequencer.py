"""
Volume Reconciler — drives one instance from declared to observed state.

Every invocation:
  LOAD → INIT CONDITIONS → (DELETE | FINALIZE-FIRST | PHASES) → EXIT GUARD

The exit guard runs on every path (completion, wait, failure, cancellation,
unexpected exception): it mirrors the aggregate Ready condition, restores
transition times of unchanged conditions and persists status and finalizers.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from volume_reconciler.collaborators.protocols import (
    CancelToken,
    ConfigWriter,
    NetworkAttachmentOracle,
    ResourceApplier,
    SecretProvider,
    StateStore,
    TLSValidator,
    WorkloadBuilder,
)
from volume_reconciler.conditions.ledger import ConditionLedger, unknown_condition
from volume_reconciler.errors import ConflictError, NotFoundError, ReconcileCancelled
from volume_reconciler.lifecycle.guard import LifecycleGuard
from volume_reconciler.models import conditions as cond
from volume_reconciler.models.conditions import Condition
from volume_reconciler.models.instance import VolumeStatus
from volume_reconciler.models.reconciler import ReconcileResult, ReconcilerConfig
from volume_reconciler.reconciler.phases import (
    OutcomeKind,
    PassContext,
    PhaseOutcome,
    ReconcilePhases,
)
from volume_reconciler.workload.builder import build_workload

logger = logging.getLogger(__name__)


def initial_conditions() -> List[Condition]:
    """Conditions tracked for every instance, in aggregation order."""
    return [
        unknown_condition(cond.READY_CONDITION, cond.INIT_REASON, cond.READY_INIT_MESSAGE),
        unknown_condition(
            cond.INPUT_READY_CONDITION, cond.INIT_REASON, cond.INPUT_READY_INIT_MESSAGE
        ),
        unknown_condition(
            cond.TLS_INPUT_READY_CONDITION, cond.INIT_REASON, cond.INPUT_READY_INIT_MESSAGE
        ),
        unknown_condition(
            cond.SERVICE_CONFIG_READY_CONDITION,
            cond.INIT_REASON,
            cond.SERVICE_CONFIG_READY_INIT_MESSAGE,
        ),
        unknown_condition(
            cond.DEPLOYMENT_READY_CONDITION,
            cond.INIT_REASON,
            cond.DEPLOYMENT_READY_INIT_MESSAGE,
        ),
        unknown_condition(
            cond.NETWORK_ATTACHMENTS_READY_CONDITION,
            cond.INIT_REASON,
            cond.NETWORK_ATTACHMENTS_READY_INIT_MESSAGE,
        ),
    ]


class VolumeReconciler:
    """
    The reconciliation engine for volume service instances.

    Holds no per-instance state between invocations; each pass builds its own
    condition ledger and status copy, so passes for different instances may
    run concurrently.
    """

    def __init__(
        self,
        state_store: StateStore,
        secrets: SecretProvider,
        config_writer: ConfigWriter,
        tls_validator: TLSValidator,
        applier: ResourceApplier,
        networks: NetworkAttachmentOracle,
        builder: WorkloadBuilder = build_workload,
        config: Optional[ReconcilerConfig] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = state_store
        self.config = config or ReconcilerConfig()
        self.guard = LifecycleGuard(self.config.finalizer)
        self.phases = ReconcilePhases(
            secrets=secrets,
            config_writer=config_writer,
            tls_validator=tls_validator,
            applier=applier,
            networks=networks,
            builder=builder,
            config=self.config,
        )
        self._clock = clock

    def reconcile_once(
        self, key: str, cancel: Optional[CancelToken] = None
    ) -> ReconcileResult:
        """
        Run a single reconcile pass for the instance stored under `key`.

        Returns whether (and when) to requeue. A degraded pass raises the
        underlying ReconcileError once status has been persisted.
        """
        try:
            instance = self.store.get(key)
        except NotFoundError:
            # Deleted after the trigger fired; nothing left to clean up
            logger.debug("Volume instance %s not found, skipping", key)
            return ReconcileResult()

        is_new = instance.status is None
        saved = list(instance.status.conditions) if not is_new else []
        status = (
            instance.status.model_copy(deep=True) if not is_new else VolumeStatus()
        )

        # Rebuilt from scratch each pass; unchanged transition times are restored on exit
        ledger = ConditionLedger(clock=self._clock)
        ledger.init(initial_conditions())
        status.observed_generation = instance.generation

        ctx = PassContext(instance, status, ledger)
        try:
            outcome = self._run(ctx, is_new, cancel)
        finally:
            self._exit_guard(ctx, saved)

        return self._to_result(ctx, outcome)

    def _run(
        self, ctx: PassContext, is_new: bool, cancel: Optional[CancelToken]
    ) -> PhaseOutcome:
        instance = ctx.instance
        self._check_cancelled(cancel, instance.name)

        if self.guard.is_deleting(instance):
            return self._reconcile_delete(ctx)

        ctx.finalizer_added = self.guard.ensure_finalizer(instance)
        if ctx.finalizer_added or is_new:
            # Publish initial status right away; convergence starts next pass
            return PhaseOutcome.wait()

        return self._reconcile_normal(ctx, cancel)

    def _reconcile_delete(self, ctx: PassContext) -> PhaseOutcome:
        name = ctx.instance.name
        logger.info("Reconciling Service '%s' delete", name)
        ctx.finalizer_removed = self.guard.release(ctx.instance)
        logger.info("Reconciled Service '%s' delete successfully", name)
        return PhaseOutcome.proceed()

    def _reconcile_normal(
        self, ctx: PassContext, cancel: Optional[CancelToken]
    ) -> PhaseOutcome:
        name = ctx.instance.name
        logger.info("Reconciling Service '%s'", name)

        for phase in self.phases.ordered:
            self._check_cancelled(cancel, name)
            outcome = phase(ctx)
            if outcome.kind != OutcomeKind.CONTINUE:
                logger.info(
                    "Service '%s' stopped at %s: %s",
                    name, phase.__name__, outcome.kind.value,
                )
                return outcome

        logger.info("Reconciled Service '%s' successfully", name)
        return PhaseOutcome.proceed()

    def _check_cancelled(self, cancel: Optional[CancelToken], name: str) -> None:
        if cancel is not None and cancel.is_set():
            raise ReconcileCancelled(f"reconcile of '{name}' cancelled")

    # --- Exit guard ---

    def _exit_guard(self, ctx: PassContext, saved: List[Condition]) -> None:
        ledger = ctx.ledger
        if ledger.is_unknown(cond.READY_CONDITION):
            ledger.set(ledger.mirror(cond.READY_CONDITION))
        ledger.restore_last_transition_times(saved)
        ctx.status.conditions = ledger.to_list()
        ctx.persist_conflicted = not self._persist(ctx)

    def _persist(self, ctx: PassContext) -> bool:
        """
        Write status and finalizers, re-reading and resending on conflicts.
        Returns False when every retry lost its race.
        """
        key = ctx.instance.key
        current = ctx.loaded
        for attempt in range(self.config.max_conflict_retries + 1):
            try:
                if current.status != ctx.status:
                    current = self.store.patch_status(
                        key, ctx.status, current.resource_version
                    )
                finalizers = self._desired_finalizers(ctx, current.finalizers)
                if finalizers != current.finalizers:
                    current = self.store.patch_finalizers(
                        key, finalizers, current.resource_version
                    )
                return True
            except NotFoundError:
                # Removed once the last finalizer went away
                return True
            except ConflictError as e:
                logger.info(
                    "Conflict persisting '%s' (attempt %d): %s", key, attempt + 1, e
                )
                try:
                    current = self.store.get(key)
                except NotFoundError:
                    return True

        logger.warning(
            "Giving up persisting '%s' after %d conflicts",
            key, self.config.max_conflict_retries + 1,
        )
        return False

    def _desired_finalizers(self, ctx: PassContext, finalizers: List[str]) -> List[str]:
        finalizer = self.guard.finalizer
        if ctx.finalizer_removed:
            return [f for f in finalizers if f != finalizer]
        if ctx.finalizer_added and finalizer not in finalizers:
            return list(finalizers) + [finalizer]
        return list(finalizers)

    def _to_result(self, ctx: PassContext, outcome: PhaseOutcome) -> ReconcileResult:
        if outcome.kind == OutcomeKind.FAIL:
            logger.warning(
                "Reconcile of '%s' degraded: %s", ctx.instance.name, outcome.error
            )
            raise outcome.error
        if ctx.persist_conflicted:
            return ReconcileResult(
                requeue=True, requeue_after=self.config.short_requeue_seconds
            )
        if outcome.kind == OutcomeKind.WAIT:
            return ReconcileResult(requeue=True, requeue_after=outcome.delay)
        return ReconcileResult()

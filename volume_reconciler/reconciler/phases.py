"""
Reconcile phases for a live (not deleting) volume instance.

Each phase reads the pass context, updates the conditions it owns and returns
a tagged PhaseOutcome:

  CONTINUE      — move on to the next phase
  WAIT(delay)   — stop this pass and requeue, after `delay` seconds if set
  FAIL(error)   — stop this pass and surface `error` to the trigger

Phases are safe to re-run from scratch; none assumes it is the first attempt.
"""

import logging
from enum import Enum
from typing import Callable, Dict, List, Optional

from volume_reconciler.collaborators.protocols import (
    ConfigWriter,
    NetworkAttachmentOracle,
    ResourceApplier,
    SecretProvider,
    TLSValidator,
    WorkloadBuilder,
)
from volume_reconciler.conditions.ledger import ConditionLedger, false_condition
from volume_reconciler.config.materializer import (
    generate_service_configs,
    parent_config_secret_name,
    parent_scripts_secret_name,
)
from volume_reconciler.errors import (
    ErrorKind,
    MalformedInputError,
    NotFoundError,
    ReconcileError,
    UpstreamUnavailableError,
)
from volume_reconciler.hashing.ledger import compute_stable_hash, record_and_detect_change
from volume_reconciler.models import conditions as cond
from volume_reconciler.models.conditions import Severity
from volume_reconciler.models.instance import VolumeInstance, VolumeStatus
from volume_reconciler.models.reconciler import ReconcilerConfig
from volume_reconciler.models.workload import ObservedWorkload
from volume_reconciler.workload.builder import (
    create_networks_annotation,
    instance_labels,
    service_labels,
)

logger = logging.getLogger(__name__)

CA_BUNDLE_HASH_KEY = "CABundle"


class OutcomeKind(str, Enum):
    CONTINUE = "continue"
    WAIT = "wait"
    FAIL = "fail"


class PhaseOutcome:
    """Tagged result of a single phase."""

    def __init__(
        self,
        kind: OutcomeKind,
        delay: Optional[float] = None,
        error: Optional[ReconcileError] = None,
    ):
        self.kind = kind
        self.delay = delay
        self.error = error

    @classmethod
    def proceed(cls) -> "PhaseOutcome":
        return cls(OutcomeKind.CONTINUE)

    @classmethod
    def wait(cls, delay: Optional[float] = None) -> "PhaseOutcome":
        return cls(OutcomeKind.WAIT, delay=delay)

    @classmethod
    def fail(cls, error: ReconcileError) -> "PhaseOutcome":
        return cls(OutcomeKind.FAIL, error=error)

    def __repr__(self) -> str:
        return f"PhaseOutcome({self.kind.value}, delay={self.delay}, error={self.error!r})"


class PassContext:
    """Everything one reconcile pass accumulates while walking the phases."""

    def __init__(
        self,
        instance: VolumeInstance,
        status: VolumeStatus,
        ledger: ConditionLedger,
    ):
        self.instance = instance
        self.loaded = instance.model_copy(deep=True)
        self.status = status
        self.ledger = ledger
        self.config_vars: Dict[str, str] = {}
        self.service_labels: Dict[str, str] = {}
        self.annotations: Dict[str, str] = {}
        self.uses_lvm = False
        self.input_hash = ""
        self.observed: Optional[ObservedWorkload] = None
        self.finalizer_added = False
        self.finalizer_removed = False
        self.persist_conflicted = False


def _upstream(call: Callable, *args):
    """Run a collaborator call; foreign exceptions become UpstreamUnavailableError."""
    try:
        return call(*args)
    except ReconcileError:
        raise
    except Exception as e:
        raise UpstreamUnavailableError(str(e)) from e


def _severity_for(error: ReconcileError) -> Severity:
    if error.kind == ErrorKind.UPSTREAM_UNAVAILABLE:
        return Severity.ERROR
    return Severity.WARNING


def _degraded(
    ctx: PassContext, type_: str, template: str, error: ReconcileError
) -> PhaseOutcome:
    ctx.ledger.set(false_condition(
        type_,
        cond.ERROR_REASON,
        _severity_for(error),
        template.format(error),
    ))
    return PhaseOutcome.fail(error)


class ReconcilePhases:
    """
    The ordered phases of the normal (non-deletion) path.
    """

    def __init__(
        self,
        secrets: SecretProvider,
        config_writer: ConfigWriter,
        tls_validator: TLSValidator,
        applier: ResourceApplier,
        networks: NetworkAttachmentOracle,
        builder: WorkloadBuilder,
        config: ReconcilerConfig,
    ):
        self.secrets = secrets
        self.config_writer = config_writer
        self.tls_validator = tls_validator
        self.applier = applier
        self.networks = networks
        self.builder = builder
        self.config = config
        self._phases: List[Callable[[PassContext], PhaseOutcome]] = []
        self._register_default_phases()

    def _register_default_phases(self) -> None:
        self._phases = [
            self.verify_service_secret,
            self.verify_config_secrets,
            self.verify_tls_input,
            self.generate_service_config,
            self.check_input_hash,
            self.verify_network_attachments,
            self.converge_workload,
            self.evaluate_readiness,
            self.aggregate_ready,
        ]

    @property
    def ordered(self) -> List[Callable[[PassContext], PhaseOutcome]]:
        return list(self._phases)

    # --- Input validation ---

    def verify_service_secret(self, ctx: PassContext) -> PhaseOutcome:
        """The service secret must exist and carry the password key."""
        spec = ctx.instance.spec
        try:
            data, existed = _upstream(
                self.secrets.resolve, spec.secret, ctx.instance.namespace
            )
        except ReconcileError as e:
            return _degraded(
                ctx, cond.INPUT_READY_CONDITION, cond.INPUT_READY_ERROR_MESSAGE, e
            )

        if not existed:
            logger.info("Service secret %s not found", spec.secret)
            ctx.ledger.mark_false(
                cond.INPUT_READY_CONDITION,
                cond.REQUESTED_REASON,
                Severity.INFO,
                cond.INPUT_READY_WAITING_MESSAGE.format(spec.secret),
            )
            return PhaseOutcome.wait(self.config.short_requeue_seconds)

        field = spec.password_selectors.service
        if field not in data:
            error = MalformedInputError(f"field {field} not found in secret {spec.secret}")
            return _degraded(
                ctx, cond.INPUT_READY_CONDITION, cond.INPUT_READY_ERROR_MESSAGE, error
            )

        ctx.config_vars[spec.secret] = compute_stable_hash(data)
        return PhaseOutcome.proceed()

    def verify_config_secrets(self, ctx: PassContext) -> PhaseOutcome:
        """Transport URL, parent scripts/config and custom config secrets must exist."""
        instance = ctx.instance
        names = [
            instance.spec.transport_url_secret,
            parent_scripts_secret_name(instance),
            parent_config_secret_name(instance),
        ] + list(instance.spec.custom_service_config_secrets)

        for name in names:
            try:
                data, existed = _upstream(self.secrets.resolve, name, instance.namespace)
            except ReconcileError as e:
                return _degraded(
                    ctx, cond.INPUT_READY_CONDITION, cond.INPUT_READY_ERROR_MESSAGE, e
                )
            if not existed:
                logger.info("Secret %s not found", name)
                ctx.ledger.mark_false(
                    cond.INPUT_READY_CONDITION,
                    cond.REQUESTED_REASON,
                    Severity.INFO,
                    cond.INPUT_READY_WAITING_MESSAGE.format(name),
                )
                return PhaseOutcome.wait(self.config.short_requeue_seconds)
            ctx.config_vars[name] = compute_stable_hash(data)

        ctx.ledger.mark_true(cond.INPUT_READY_CONDITION, cond.INPUT_READY_MESSAGE)
        return PhaseOutcome.proceed()

    def verify_tls_input(self, ctx: PassContext) -> PhaseOutcome:
        """Validate the CA bundle secret, if one is referenced."""
        instance = ctx.instance
        ca_secret = instance.spec.tls.ca_bundle_secret_name
        if ca_secret:
            try:
                bundle_hash = _upstream(
                    self.tls_validator.validate_ca_bundle, ca_secret, instance.namespace
                )
            except NotFoundError:
                ctx.ledger.mark_false(
                    cond.TLS_INPUT_READY_CONDITION,
                    cond.REQUESTED_REASON,
                    Severity.INFO,
                    cond.TLS_INPUT_READY_WAITING_MESSAGE.format(ca_secret),
                )
                return PhaseOutcome.wait(self.config.short_requeue_seconds)
            except ReconcileError as e:
                return _degraded(
                    ctx, cond.TLS_INPUT_READY_CONDITION, cond.TLS_INPUT_ERROR_MESSAGE, e
                )
            if bundle_hash:
                ctx.config_vars[CA_BUNDLE_HASH_KEY] = bundle_hash

        ctx.ledger.mark_true(cond.TLS_INPUT_READY_CONDITION, cond.INPUT_READY_MESSAGE)
        return PhaseOutcome.proceed()

    # --- Config ---

    def generate_service_config(self, ctx: PassContext) -> PhaseOutcome:
        instance = ctx.instance
        ctx.service_labels = service_labels(instance, self.config)
        labels = instance_labels(instance, self.config, ctx.service_labels)
        try:
            ctx.uses_lvm = generate_service_configs(
                instance,
                self.secrets,
                self.config_writer,
                self.config,
                labels,
                ctx.config_vars,
            )
        except NotFoundError as e:
            ctx.ledger.mark_false(
                cond.SERVICE_CONFIG_READY_CONDITION,
                cond.REQUESTED_REASON,
                Severity.INFO,
                cond.SERVICE_CONFIG_READY_WAITING_MESSAGE.format(e),
            )
            return PhaseOutcome.wait(self.config.short_requeue_seconds)
        except ReconcileError as e:
            return _degraded(
                ctx,
                cond.SERVICE_CONFIG_READY_CONDITION,
                cond.SERVICE_CONFIG_READY_ERROR_MESSAGE,
                e,
            )
        except Exception as e:
            return _degraded(
                ctx,
                cond.SERVICE_CONFIG_READY_CONDITION,
                cond.SERVICE_CONFIG_READY_ERROR_MESSAGE,
                UpstreamUnavailableError(str(e)),
            )
        return PhaseOutcome.proceed()

    def check_input_hash(self, ctx: PassContext) -> PhaseOutcome:
        """
        Drift guard: a changed input hash is persisted before anything is
        built from it, so this pass stops here and asks for a fresh one.
        """
        ctx.input_hash = compute_stable_hash(ctx.config_vars)
        updated, changed = record_and_detect_change(
            ctx.status.hash, self.config.input_hash_name, ctx.input_hash
        )
        if changed:
            ctx.status.hash = updated
            logger.info(
                "Input maps hash %s - %s", self.config.input_hash_name, ctx.input_hash
            )
            logger.info("%s... requeueing", cond.SERVICE_CONFIG_READY_INIT_MESSAGE)
            ctx.ledger.mark_false(
                cond.SERVICE_CONFIG_READY_CONDITION,
                cond.INIT_REASON,
                Severity.INFO,
                cond.SERVICE_CONFIG_READY_INIT_MESSAGE,
            )
            return PhaseOutcome.wait()

        ctx.ledger.mark_true(
            cond.SERVICE_CONFIG_READY_CONDITION, cond.SERVICE_CONFIG_READY_MESSAGE
        )
        return PhaseOutcome.proceed()

    # --- Workload ---

    def verify_network_attachments(self, ctx: PassContext) -> PhaseOutcome:
        """Every declared attachment definition must exist before pods request it."""
        instance = ctx.instance
        for name in instance.spec.network_attachments:
            try:
                found = _upstream(self.networks.exists, name, instance.namespace)
            except ReconcileError as e:
                return _degraded(
                    ctx,
                    cond.NETWORK_ATTACHMENTS_READY_CONDITION,
                    cond.NETWORK_ATTACHMENTS_READY_ERROR_MESSAGE,
                    e,
                )
            if not found:
                logger.info("network-attachment-definition %s not found", name)
                ctx.ledger.mark_false(
                    cond.NETWORK_ATTACHMENTS_READY_CONDITION,
                    cond.REQUESTED_REASON,
                    Severity.INFO,
                    cond.NETWORK_ATTACHMENTS_READY_WAITING_MESSAGE.format(name),
                )
                return PhaseOutcome.wait(self.config.normal_requeue_seconds)

        try:
            ctx.annotations = create_networks_annotation(
                instance.namespace, instance.spec.network_attachments
            )
        except ReconcileError as e:
            error = MalformedInputError(
                f"failed create network annotation from "
                f"{instance.spec.network_attachments}: {e}"
            )
            return _degraded(
                ctx,
                cond.NETWORK_ATTACHMENTS_READY_CONDITION,
                cond.NETWORK_ATTACHMENTS_READY_ERROR_MESSAGE,
                error,
            )
        return PhaseOutcome.proceed()

    def converge_workload(self, ctx: PassContext) -> PhaseOutcome:
        """Create or update the workload, then wait until its controller caught up."""
        instance = ctx.instance
        try:
            spec = self.builder(
                instance,
                ctx.input_hash,
                ctx.service_labels,
                ctx.annotations,
                ctx.uses_lvm,
            )
            observed, requires_wait = _upstream(self.applier.create_or_update, spec)
        except ReconcileError as e:
            return _degraded(
                ctx,
                cond.DEPLOYMENT_READY_CONDITION,
                cond.DEPLOYMENT_READY_ERROR_MESSAGE,
                e,
            )

        if requires_wait or observed.generation != observed.observed_generation:
            logger.info("Waiting for workload %s to start reconciling", observed.name)
            ctx.ledger.mark_false(
                cond.DEPLOYMENT_READY_CONDITION,
                cond.REQUESTED_REASON,
                Severity.INFO,
                cond.DEPLOYMENT_READY_RUNNING_MESSAGE,
            )
            # Attachments cannot be ready before the workload is
            ctx.ledger.mark_false(
                cond.NETWORK_ATTACHMENTS_READY_CONDITION,
                cond.REQUESTED_REASON,
                Severity.INFO,
                cond.NETWORK_ATTACHMENTS_READY_INIT_MESSAGE,
            )
            return PhaseOutcome.wait(self.config.short_requeue_seconds)

        ctx.observed = observed
        return PhaseOutcome.proceed()

    def evaluate_readiness(self, ctx: PassContext) -> PhaseOutcome:
        instance = ctx.instance
        replicas = instance.spec.replicas
        ctx.status.ready_count = ctx.observed.ready_replicas if ctx.observed else 0

        if replicas > 0:
            try:
                network_ready, attachment_ips = _upstream(
                    self.networks.verify_status,
                    instance.spec.network_attachments,
                    ctx.service_labels,
                    ctx.status.ready_count,
                )
            except ReconcileError as e:
                error = type(e)(
                    f"verifying API NetworkAttachments "
                    f"({instance.spec.network_attachments}) {e}"
                )
                return _degraded(
                    ctx,
                    cond.NETWORK_ATTACHMENTS_READY_CONDITION,
                    cond.NETWORK_ATTACHMENTS_READY_ERROR_MESSAGE,
                    error,
                )
        else:
            network_ready, attachment_ips = True, {}

        ctx.status.network_attachments = attachment_ips
        if not network_ready:
            error = UpstreamUnavailableError(
                "not all pods have interfaces with ips as configured in "
                f"NetworkAttachments: {instance.spec.network_attachments}"
            )
            ctx.ledger.mark_false(
                cond.NETWORK_ATTACHMENTS_READY_CONDITION,
                cond.ERROR_REASON,
                Severity.WARNING,
                cond.NETWORK_ATTACHMENTS_READY_ERROR_MESSAGE.format(error),
            )
            return PhaseOutcome.fail(error)
        ctx.ledger.mark_true(
            cond.NETWORK_ATTACHMENTS_READY_CONDITION,
            cond.NETWORK_ATTACHMENTS_READY_MESSAGE,
        )

        if ctx.status.ready_count > 0:
            ctx.ledger.mark_true(
                cond.DEPLOYMENT_READY_CONDITION, cond.DEPLOYMENT_READY_MESSAGE
            )
        elif replicas > 0:
            ctx.ledger.mark_false(
                cond.DEPLOYMENT_READY_CONDITION,
                cond.REQUESTED_REASON,
                Severity.INFO,
                cond.DEPLOYMENT_READY_RUNNING_MESSAGE,
            )
        else:
            ctx.ledger.mark_false(
                cond.DEPLOYMENT_READY_CONDITION,
                cond.NOT_REQUESTED_REASON,
                Severity.INFO,
                cond.DEPLOYMENT_READY_INIT_MESSAGE,
            )
        return PhaseOutcome.proceed()

    def aggregate_ready(self, ctx: PassContext) -> PhaseOutcome:
        if is_ready(ctx):
            ctx.ledger.mark_true(cond.READY_CONDITION, cond.READY_MESSAGE)
        # Otherwise the exit guard mirrors the first failing condition into Ready
        return PhaseOutcome.proceed()


def is_ready(ctx: PassContext) -> bool:
    """
    Every tracked condition is True, except that a zero-replica workload
    reports DeploymentReady=False/NotRequested; and some replica is ready
    whenever replicas were requested.
    """
    replicas = ctx.instance.spec.replicas
    exclude = [cond.READY_CONDITION]
    deployment = ctx.ledger.get(cond.DEPLOYMENT_READY_CONDITION)
    if (
        replicas == 0
        and deployment is not None
        and deployment.reason == cond.NOT_REQUESTED_REASON
    ):
        exclude.append(cond.DEPLOYMENT_READY_CONDITION)
    if not ctx.ledger.all_true(exclude):
        return False
    return replicas == 0 or ctx.status.ready_count > 0

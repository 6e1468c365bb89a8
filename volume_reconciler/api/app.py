"""
Volume Reconciler API — FastAPI trigger surface.

Lets an external watch or scheduler ask for a reconcile pass of one instance
and learn whether (and when) to ask again. Only the pass result crosses this
boundary; desired state and status stay with the state store.
"""

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from volume_reconciler.errors import ErrorKind, ReconcileError
from volume_reconciler.models.instance import instance_key
from volume_reconciler.reconciler.sequencer import VolumeReconciler

logger = logging.getLogger(__name__)


# --- Response Models ---

class ReconcileResponse(BaseModel):
    key: str
    requeue: bool
    requeue_after: Optional[float] = None


# --- Application Factory ---

def create_app(reconciler: VolumeReconciler) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Volume Reconciler API",
        description="Reconcile triggers for volume service instances",
        version="0.1.0",
    )
    app.state.reconciler = reconciler

    @app.post("/reconcile/{namespace}/{name}", response_model=ReconcileResponse)
    def trigger_reconcile(namespace: str, name: str):
        """Run one reconcile pass for an instance."""
        key = instance_key(namespace, name)
        try:
            result = reconciler.reconcile_once(key)
        except ReconcileError as e:
            status_code = 503 if e.kind == ErrorKind.UPSTREAM_UNAVAILABLE else 409
            logger.info("Reconcile of %s failed (%s): %s", key, e.kind.value, e)
            raise HTTPException(
                status_code, detail={"kind": e.kind.value, "message": str(e)}
            )
        return ReconcileResponse(
            key=key, requeue=result.requeue, requeue_after=result.requeue_after
        )

    @app.get("/reconciler/config")
    def get_config():
        """Current reconciler configuration."""
        return reconciler.config.model_dump(mode="json")

    return app

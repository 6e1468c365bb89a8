"""Workload — the managed resource built for a volume instance and its observed state."""

from typing import Dict, List, Optional

from pydantic import BaseModel


class WorkloadSpec(BaseModel):
    """Desired shape of the stateful workload running the volume service."""

    name: str
    namespace: str
    replicas: int
    image: str
    labels: Dict[str, str] = {}
    pod_annotations: Dict[str, str] = {}
    env: Dict[str, str] = {}
    config_secret: str
    node_selector: Optional[Dict[str, str]] = None
    privileged: bool = False
    host_paths: List[str] = []


class ObservedWorkload(BaseModel):
    """What the resource applier reports back after a create-or-update."""

    name: str
    generation: int
    observed_generation: int
    ready_replicas: int = 0

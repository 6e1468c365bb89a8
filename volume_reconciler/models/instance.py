"""Volume Instance — desired state declared for one volume service, plus its status."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from volume_reconciler.models.conditions import Condition


class PasswordSelector(BaseModel):
    """Which keys of the service secret carry the credentials."""

    service: str = "CinderPassword"


class TLSSpec(BaseModel):
    ca_bundle_secret_name: Optional[str] = None


class VolumeSpec(BaseModel):
    """What the operator is asked to realize."""

    replicas: int = Field(ge=0, default=1)
    secret: str                                     # Service credentials secret
    password_selectors: PasswordSelector = PasswordSelector()
    transport_url_secret: str = ""
    custom_service_config: str = ""                 # INI snippet for this backend
    custom_service_config_secrets: List[str] = []
    tls: TLSSpec = TLSSpec()
    network_attachments: List[str] = []
    container_image: str = ""
    node_selector: Optional[Dict[str, str]] = None


class VolumeStatus(BaseModel):
    """Owned by the reconciler; persisted at the end of every invocation."""

    conditions: List[Condition] = []
    hash: Dict[str, str] = {}
    network_attachments: Dict[str, List[str]] = {}
    ready_count: int = 0
    observed_generation: int = 0


class VolumeInstance(BaseModel):
    """A volume service instance as held by the state store."""

    name: str
    namespace: str
    generation: int = 1
    resource_version: int = 1
    deletion_timestamp: Optional[datetime] = None
    finalizers: List[str] = []
    labels: Dict[str, str] = {}
    parent_name: str                                # Owning top-level service
    spec: VolumeSpec
    status: Optional[VolumeStatus] = None

    @property
    def key(self) -> str:
        return instance_key(self.namespace, self.name)

    @property
    def backend_name(self) -> str:
        """Backend name: the instance name without the parent's volume prefix."""
        prefix = f"{self.parent_name}-volume-"
        if self.name.startswith(prefix):
            return self.name[len(prefix):]
        return self.name


def instance_key(namespace: str, name: str) -> str:
    return f"{namespace}/{name}"

"""Condition — named, timestamped status signal published on a volume instance."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class Severity(str, Enum):
    NONE = ""
    INFO = "Info"
    WARNING = "Warning"
    ERROR = "Error"


# Condition types
READY_CONDITION = "Ready"
INPUT_READY_CONDITION = "InputReady"
TLS_INPUT_READY_CONDITION = "TLSInputReady"
SERVICE_CONFIG_READY_CONDITION = "ServiceConfigReady"
DEPLOYMENT_READY_CONDITION = "DeploymentReady"
NETWORK_ATTACHMENTS_READY_CONDITION = "NetworkAttachmentsReady"

# Reasons
INIT_REASON = "Init"
READY_REASON = "Ready"
REQUESTED_REASON = "Requested"
ERROR_REASON = "Error"
NOT_REQUESTED_REASON = "NotRequested"

# Messages
READY_INIT_MESSAGE = "Setup started"
READY_MESSAGE = "Setup complete"

INPUT_READY_INIT_MESSAGE = "Input data not checked"
INPUT_READY_MESSAGE = "Input data complete"
INPUT_READY_WAITING_MESSAGE = "Input data resources missing: {}"
INPUT_READY_ERROR_MESSAGE = "Input data error occurred {}"

TLS_INPUT_READY_WAITING_MESSAGE = "TLSInput is missing: {}"
TLS_INPUT_ERROR_MESSAGE = "TLSInput error occurred in TLS sources {}"

SERVICE_CONFIG_READY_INIT_MESSAGE = "Service config create not started"
SERVICE_CONFIG_READY_MESSAGE = "Service config create completed"
SERVICE_CONFIG_READY_WAITING_MESSAGE = "Service config input missing: {}"
SERVICE_CONFIG_READY_ERROR_MESSAGE = "Service config create error occurred {}"

DEPLOYMENT_READY_INIT_MESSAGE = "Deployment not started"
DEPLOYMENT_READY_RUNNING_MESSAGE = "Deployment in progress"
DEPLOYMENT_READY_MESSAGE = "Deployment completed"
DEPLOYMENT_READY_ERROR_MESSAGE = "Deployment error occurred {}"

NETWORK_ATTACHMENTS_READY_INIT_MESSAGE = "NetworkAttachments not started"
NETWORK_ATTACHMENTS_READY_MESSAGE = "NetworkAttachments completed"
NETWORK_ATTACHMENTS_READY_WAITING_MESSAGE = "NetworkAttachment resources missing: {}"
NETWORK_ATTACHMENTS_READY_ERROR_MESSAGE = "NetworkAttachments error occurred {}"


class Condition(BaseModel):
    """A single status condition. Severity is empty while status is True."""

    type: str
    status: ConditionStatus
    reason: str
    severity: Severity = Severity.NONE
    message: str = ""
    last_transition_time: Optional[datetime] = None

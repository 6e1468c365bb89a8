"""
Service config materialization.

The generated `<instance>-config-data` bundle layers four snippets, read by
the service in file-name order:

  00-global-defaults.conf  — owner-provided defaults (from `<parent>-config-data`)
  01-global-custom.conf    — owner-provided customization (same source)
  02-service-custom.conf   — this instance's custom config, augmented
  03-secrets-custom.conf   — every custom config secret, concatenated
"""

import logging
from typing import Dict, MutableMapping

from volume_reconciler.collaborators.protocols import ConfigWriter, SecretProvider
from volume_reconciler.config.augmenter import process_custom_service_config
from volume_reconciler.errors import MalformedInputError, NotFoundError
from volume_reconciler.models.instance import VolumeInstance
from volume_reconciler.models.reconciler import ReconcilerConfig

logger = logging.getLogger(__name__)

DEFAULTS_CONFIG_FILE_NAME = "00-global-defaults.conf"
CUSTOM_CONFIG_FILE_NAME = "01-global-custom.conf"
CUSTOM_SERVICE_CONFIG_FILE_NAME = "02-service-custom.conf"
CUSTOM_SERVICE_CONFIG_SECRETS_FILE_NAME = "03-secrets-custom.conf"


def parent_config_secret_name(instance: VolumeInstance) -> str:
    return f"{instance.parent_name}-config-data"


def parent_scripts_secret_name(instance: VolumeInstance) -> str:
    return f"{instance.parent_name}-scripts"


def service_config_name(instance: VolumeInstance) -> str:
    return f"{instance.name}-config-data"


def _decode(value: bytes, secret_name: str, key: str) -> str:
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedInputError(
            f"secret {secret_name} key {key} is not valid UTF-8"
        ) from e


def _read_secret(
    secrets: SecretProvider, name: str, namespace: str
) -> Dict[str, bytes]:
    data, existed = secrets.resolve(name, namespace)
    if not existed:
        raise NotFoundError(f"secret {name} not found")
    return data


def generate_service_configs(
    instance: VolumeInstance,
    secrets: SecretProvider,
    writer: ConfigWriter,
    config: ReconcilerConfig,
    labels: Dict[str, str],
    config_vars: MutableMapping[str, str],
) -> bool:
    """
    Write the merged service config and record its hash in `config_vars`.

    Returns whether the LVM driver is in use. Raises NotFoundError when an
    input secret disappeared, MalformedInputError when a secret value is not
    UTF-8 text, UpstreamUnavailableError when a backend failed.
    """
    uses_lvm, custom_service_config = process_custom_service_config(
        instance.spec.custom_service_config, config.lvm_driver_suffix
    )
    custom_data = {CUSTOM_SERVICE_CONFIG_FILE_NAME: custom_service_config}

    parent_secret = parent_config_secret_name(instance)
    parent_data = _read_secret(secrets, parent_secret, instance.namespace)
    for file_name in (DEFAULTS_CONFIG_FILE_NAME, CUSTOM_CONFIG_FILE_NAME):
        custom_data[file_name] = _decode(
            parent_data.get(file_name, b""), parent_secret, file_name
        )

    custom_secrets = ""
    for secret_name in instance.spec.custom_service_config_secrets:
        data = _read_secret(secrets, secret_name, instance.namespace)
        for key in sorted(data):
            custom_secrets += _decode(data[key], secret_name, key) + "\n"
    custom_data[CUSTOM_SERVICE_CONFIG_SECRETS_FILE_NAME] = custom_secrets

    name = service_config_name(instance)
    config_vars[name] = writer.ensure_config(
        name, instance.namespace, custom_data, labels
    )
    logger.debug("Service config %s ensured (uses_lvm=%s)", name, uses_lvm)
    return uses_lvm

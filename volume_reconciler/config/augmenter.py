"""
Custom-Config Augmenter — derives implicit settings from a backend's INI snippet.

The custom service config is not rewritten in the stored instance; the
augmented text only feeds the generated service configuration. Today the only
derived setting is `enabled_backends`, added when the snippet declares
backends without listing them. The scan also reports whether the LVM driver
is in use, explicitly or as the implicit default.
"""

from typing import List, Tuple

LVM_DRIVER_SUFFIX = ".LVMVolumeDriver"


def process_custom_service_config(
    custom_service_config: str, lvm_driver_suffix: str = LVM_DRIVER_SUFFIX
) -> Tuple[bool, str]:
    """Return (uses_lvm, augmented_config)."""
    lines = custom_service_config.split("\n")
    has_enabled_backends = False
    uses_lvm = False
    num_drivers = 0
    default_section_idx = -1
    section_name = ""
    backend_names: List[str] = []

    for idx, raw_line in enumerate(lines):
        line = raw_line.strip()
        token = line.split("=", 1)[0].strip()

        if not token or token.startswith("#"):
            continue

        if token == "enabled_backends":
            has_enabled_backends = True
        elif token == "[DEFAULT]":
            default_section_idx = idx
        elif token.startswith("[") and token.endswith("]"):
            section_name = token.strip("[]")
        elif token == "volume_backend_name":
            # Listed under the section name, not the value
            backend_names.append(section_name)
        elif token == "volume_driver":
            num_drivers += 1
            if line.endswith(lvm_driver_suffix):
                uses_lvm = True

    # LVM is the default driver: a backend without volume_driver uses it
    if num_drivers < len(backend_names):
        uses_lvm = True

    if has_enabled_backends or not backend_names:
        return uses_lvm, custom_service_config

    enabled = "enabled_backends=" + ",".join(backend_names)
    if default_section_idx == -1:
        return uses_lvm, f"[DEFAULT]\n{enabled}\n{custom_service_config}"

    # Keys already under [DEFAULT] are left where they are
    lines[default_section_idx] = f"[DEFAULT]\n{enabled}"
    return uses_lvm, "\n".join(lines)

"""VM synthesis and observation exports."""

from __future__ import annotations

from .addresses import extract_addresses, vm_is_running
from .spec import (
    CLOUD_INIT_BASE,
    build_cloud_init,
    build_vm_definition,
    claim_name_for,
    ensure_cloud_init_secret,
    fetch_ssh_key,
    instance_labels,
    synthesize_vm_template,
    validate_machine_request,
    vm_labels,
)

__all__ = [
    'CLOUD_INIT_BASE',
    'build_cloud_init',
    'build_vm_definition',
    'claim_name_for',
    'ensure_cloud_init_secret',
    'extract_addresses',
    'fetch_ssh_key',
    'instance_labels',
    'synthesize_vm_template',
    'validate_machine_request',
    'vm_is_running',
    'vm_labels',
]

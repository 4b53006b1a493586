"""Project live VM instance interfaces into machine addresses."""

from __future__ import annotations

from ..errors import NoInstancesFoundError
from ..model import ADDRESS_EXTERNAL_IP, MachineAddress

RUNNING_STRATEGIES = ('Always', 'RerunOnFailure')


def vm_is_running(vm: dict) -> bool:
    spec = vm.get('spec') or {}
    if spec.get('running') is True:
        return True
    return spec.get('runStrategy') in RUNNING_STRATEGIES


def extract_addresses(platform, vm: dict) -> list[MachineAddress]:
    meta = vm.get('metadata') or {}
    name = meta.get('name', '')
    instances = platform.list_vm_instances(meta.get('namespace', ''), name)
    if not instances:
        raise NoInstancesFoundError(f'no VM instances found for VM {name}')
    addresses: list[MachineAddress] = []
    for instance in instances:
        for nic in (instance.get('status') or {}).get('interfaces') or []:
            addresses.append(
                MachineAddress(ADDRESS_EXTERNAL_IP, nic.get('ipAddress') or '')
            )
    return addresses

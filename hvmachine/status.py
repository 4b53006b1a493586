"""Probe and rendering logic for machine/VM status reporting."""

from __future__ import annotations

from dataclasses import dataclass

from .errors import NoInstancesFoundError, NotFoundError
from .model import MachineRequest
from .vm import extract_addresses, vm_is_running


@dataclass(frozen=True)
class ProbeOutcome:
    ok: bool | None
    detail: str


def status_line(ok: bool | None, label: str, detail: str = '') -> str:
    icon = '✅' if ok is True else ('➖' if ok is None else '❌')
    suffix = f' - {detail}' if detail else ''
    return f'{icon} {label}{suffix}'


def probe_finalizer(machine: MachineRequest, finalizer: str) -> ProbeOutcome:
    if machine.has_finalizer(finalizer):
        return ProbeOutcome(True, finalizer)
    return ProbeOutcome(False, f'{finalizer} missing')


def probe_vm(platform, machine: MachineRequest) -> ProbeOutcome:
    if platform is None:
        return ProbeOutcome(None, 'platform not queried')
    try:
        vm = platform.get_vm(machine.target_namespace, machine.name)
    except NotFoundError:
        return ProbeOutcome(
            False, f'{machine.target_namespace}/{machine.name} not found'
        )
    if not vm_is_running(vm):
        return ProbeOutcome(None, 'defined but not running')
    try:
        addrs = [a for a in extract_addresses(platform, vm) if a.address]
    except NoInstancesFoundError:
        return ProbeOutcome(None, 'running, no instance yet')
    detail = 'running'
    if addrs:
        detail += f' ({", ".join(a.address for a in addrs)})'
    return ProbeOutcome(True, detail)


def render_machine_status(
    machine: MachineRequest, *, finalizer: str, platform=None
) -> str:
    status = machine.status
    lines = [f'🧭 HarvesterMachine {machine.namespace}/{machine.name}']
    if machine.deleting:
        lines.append(
            status_line(
                None, 'Deletion', f'requested at {machine.deletion_timestamp}'
            )
        )
    if machine.paused:
        lines.append(status_line(None, 'Paused'))
    fin = probe_finalizer(machine, finalizer)
    lines.append(status_line(fin.ok, 'Finalizer', fin.detail))
    vm = probe_vm(platform, machine)
    lines.append(status_line(vm.ok, 'VM', vm.detail))
    lines.append(status_line(status.ready, 'Ready'))
    if status.addresses:
        for addr in status.addresses:
            lines.append(f'   {addr.type}: {addr.address}')
    else:
        lines.append(status_line(None, 'Addresses', 'none reported'))
    return '\n'.join(lines)

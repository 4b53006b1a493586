"""Reconciliation of a HarvesterMachine against its backing Harvester VM.

A pass is a pure function of the current remote state: it classifies the
machine into a :class:`MachinePhase`, runs the single handler for that
phase, and then persists status and finalizers. Every side effect (secret
create, VM create, deletes) is idempotent, so a pass may be repeated any
number of times after partial progress.
"""

from __future__ import annotations

import threading
from typing import Callable

from loguru import logger

from .config import HVMachineConfig
from .errors import (
    AlreadyExistsError,
    FinalizerError,
    NoInstancesFoundError,
    NotFoundError,
    PlatformError,
    ReconcileCancelled,
    VMCreateConflictError,
)
from .model import MachineRequest, OwnerCluster
from .platform import PlatformClient
from .results import MachinePhase, ReconcileResult
from .scope import Scope
from .vm import build_vm_definition, extract_addresses, vm_is_running

log = logger


def determine_phase(scope: Scope) -> MachinePhase:
    """Classify the machine; preconditions are checked in a fixed order."""
    machine = scope.machine
    if machine.deleting:
        return MachinePhase.DELETING
    if scope.cluster.paused or machine.paused:
        return MachinePhase.PAUSED
    # The finalizer must be persisted before any provisioning side effect so
    # a concurrent delete cannot orphan platform resources.
    if not machine.has_finalizer(scope.finalizer):
        return MachinePhase.NEEDS_FINALIZER
    if not scope.cluster.infrastructure_ready:
        return MachinePhase.AWAITING_INFRASTRUCTURE
    if not scope.owner_machine.bootstrap_data_secret:
        return MachinePhase.AWAITING_BOOTSTRAP_DATA
    return MachinePhase.ACTIVE


def _paused(scope: Scope) -> ReconcileResult:
    scope.log.info('Reconciliation is paused for this object')
    return ReconcileResult(phase=MachinePhase.PAUSED, detail='paused')


def _add_finalizer(scope: Scope) -> ReconcileResult:
    scope.machine.add_finalizer(scope.finalizer)
    scope.log.info('Added finalizer {}', scope.finalizer)
    return ReconcileResult(
        requeue=True,
        phase=MachinePhase.NEEDS_FINALIZER,
        detail='finalizer added',
    )


def _awaiting_infrastructure(scope: Scope) -> ReconcileResult:
    scope.log.info('Waiting for Infrastructure to be ready ...')
    return ReconcileResult(
        phase=MachinePhase.AWAITING_INFRASTRUCTURE,
        detail='cluster infrastructure not ready',
    )


def _awaiting_bootstrap_data(scope: Scope) -> ReconcileResult:
    scope.log.info("Waiting for Machine's bootstrap data to be set ...")
    return ReconcileResult(
        phase=MachinePhase.AWAITING_BOOTSTRAP_DATA,
        detail='bootstrap data secret not set',
    )


def get_existing_vm(scope: Scope) -> dict | None:
    try:
        return scope.platform.get_vm(scope.target_namespace, scope.vm_name)
    except NotFoundError:
        return None


def provision_vm(scope: Scope) -> ReconcileResult:
    vm = build_vm_definition(scope)
    try:
        scope.platform.create_vm(vm)
    except AlreadyExistsError as ex:
        raise VMCreateConflictError(
            f'VM {scope.target_namespace}/{scope.vm_name} appeared while '
            'creating it; it will be observed on the next pass',
            stderr=ex.stderr,
        ) from ex
    scope.log.info('Created VM {}/{}', scope.target_namespace, scope.vm_name)
    return ReconcileResult(
        requeue=True, phase=MachinePhase.ACTIVE, detail='VM created'
    )


def observe_vm(scope: Scope, vm: dict) -> ReconcileResult:
    scope.log.info('VM already exists in Harvester, observing it')
    status = scope.machine.status
    if not vm_is_running(vm):
        return ReconcileResult(
            requeue=not status.ready,
            phase=MachinePhase.ACTIVE,
            detail='VM not running',
        )
    try:
        addresses = extract_addresses(scope.platform, vm)
    except NoInstancesFoundError:
        if scope.cfg.reconcile.fail_on_missing_instances:
            raise
        scope.log.info('VM {} has no instance yet', scope.vm_name)
        return ReconcileResult(
            requeue=True, phase=MachinePhase.ACTIVE, detail='no VM instance yet'
        )
    if any(a.address for a in addresses):
        status.addresses = addresses
        status.ready = True
        scope.log.info(
            'Machine ready with addresses {}',
            ', '.join(a.address for a in addresses if a.address),
        )
    return ReconcileResult(
        requeue=not status.ready,
        phase=MachinePhase.ACTIVE,
        detail='ready' if status.ready else 'waiting for addresses',
    )


def reconcile_active(scope: Scope) -> ReconcileResult:
    vm = get_existing_vm(scope)
    if vm is not None:
        return observe_vm(scope, vm)
    return provision_vm(scope)


def reconcile_delete(scope: Scope) -> ReconcileResult:
    scope.log.info('Deleting HarvesterMachine ...')
    namespace = scope.target_namespace
    try:
        scope.platform.delete_secret(namespace, scope.cloud_init_secret_name)
    except NotFoundError:
        scope.log.info('cloud-init secret not found, doing nothing')
    try:
        scope.platform.delete_vm(namespace, scope.vm_name)
    except NotFoundError:
        scope.log.info('VM not found, doing nothing')
    machine = scope.machine
    if not machine.remove_finalizer(scope.finalizer):
        raise FinalizerError(
            f'unable to remove finalizer {scope.finalizer} from '
            f'HarvesterMachine {machine.namespace}/{machine.name}'
        )
    return ReconcileResult(phase=MachinePhase.DELETING, detail='finalized')


PHASE_HANDLERS: dict[MachinePhase, Callable[[Scope], ReconcileResult]] = {
    MachinePhase.DELETING: reconcile_delete,
    MachinePhase.PAUSED: _paused,
    MachinePhase.NEEDS_FINALIZER: _add_finalizer,
    MachinePhase.AWAITING_INFRASTRUCTURE: _awaiting_infrastructure,
    MachinePhase.AWAITING_BOOTSTRAP_DATA: _awaiting_bootstrap_data,
    MachinePhase.ACTIVE: reconcile_active,
}


def reconcile_scope(scope: Scope) -> ReconcileResult:
    phase = determine_phase(scope)
    scope.log.debug('Machine {} is in phase {}', scope.vm_name, phase.value)
    return PHASE_HANDLERS[phase](scope)


class MachineReconciler:
    """Resolves owners, builds the Scope, runs one pass, and persists."""

    def __init__(
        self,
        store,
        cfg: HVMachineConfig | None = None,
        *,
        platform_factory: Callable[[str], object] | None = None,
        cancel: threading.Event | None = None,
    ):
        self.store = store
        self.cfg = (cfg or HVMachineConfig()).expanded_paths()
        self.cancel = cancel
        self.platform_factory = platform_factory or self._default_platform

    def _default_platform(self, kubeconfig: str) -> PlatformClient:
        return PlatformClient(
            kubectl=self.cfg.management.kubectl,
            kubeconfig=kubeconfig,
            cancel=self.cancel,
        )

    def _platform_for(self, cluster: OwnerCluster) -> object:
        kubeconfig = self.cfg.platform.kubeconfig
        if not kubeconfig:
            kubeconfig = str(
                self.store.fetch_platform_kubeconfig(
                    cluster, self.cfg.paths.state_dir
                )
            )
        return self.platform_factory(kubeconfig)

    def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        log.info('Reconciling HarvesterMachine {}/{} ...', namespace, name)
        try:
            machine = self.store.get_machine(namespace, name)
        except NotFoundError:
            log.warning('HarvesterMachine {}/{} not found', namespace, name)
            return ReconcileResult(detail='machine not found')
        observed_finalizers = list(machine.finalizers)
        try:
            result = self._reconcile_machine(machine)
        except ReconcileCancelled:
            log.warning('Reconciliation of {}/{} cancelled', namespace, name)
            raise
        except Exception:
            self._persist(machine, observed_finalizers, raise_errors=False)
            raise
        self._persist(machine, observed_finalizers)
        return result

    def _reconcile_machine(self, machine: MachineRequest) -> ReconcileResult:
        owner = self.store.get_owner_machine(machine)
        if owner is None:
            log.info(
                'Waiting for Machine Controller to set OwnerRef on '
                'HarvesterMachine {}',
                machine.name,
            )
            return ReconcileResult(detail='waiting for owner machine')
        cluster = self.store.get_owner_cluster(owner)
        if cluster is None:
            log.info(
                'Machine {}/{} is not associated with a cluster',
                owner.namespace,
                owner.name,
            )
            return ReconcileResult(detail='waiting for owner cluster')
        scope = Scope(
            machine=machine,
            owner_machine=owner,
            cluster=cluster,
            platform=self._platform_for(cluster),
            store=self.store,
            cfg=self.cfg,
        )
        return reconcile_scope(scope)

    def _persist(
        self,
        machine: MachineRequest,
        observed_finalizers: list[str],
        *,
        raise_errors: bool = True,
    ) -> None:
        """Write status, then finalizers if the pass changed them."""
        errors: list[PlatformError] = []
        try:
            self.store.update_status(machine)
        except PlatformError as ex:
            log.error('failed to update HarvesterMachine status: {}', ex)
            errors.append(ex)
        if machine.finalizers != observed_finalizers:
            try:
                self.store.patch_finalizers(machine)
            except PlatformError as ex:
                log.error('failed to patch HarvesterMachine: {}', ex)
                errors.append(ex)
        if errors and raise_errors:
            raise errors[0]

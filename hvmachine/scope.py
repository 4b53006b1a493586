"""Per-pass context handed to the reconciler and the VM synthesizer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from .config import HVMachineConfig
from .model import MachineRequest, OwnerCluster, OwnerMachine


@dataclass
class Scope:
    machine: MachineRequest
    owner_machine: OwnerMachine
    cluster: OwnerCluster
    platform: Any
    store: Any
    cfg: HVMachineConfig = field(default_factory=HVMachineConfig)
    log: Any = None

    def __post_init__(self) -> None:
        if self.log is None:
            self.log = logger.bind(
                machine=f'{self.owner_machine.namespace}/{self.owner_machine.name}',
                cluster=f'{self.cluster.namespace}/{self.cluster.name}',
            )

    @property
    def vm_name(self) -> str:
        return self.machine.name

    @property
    def target_namespace(self) -> str:
        return self.machine.target_namespace

    @property
    def cloud_init_secret_name(self) -> str:
        return f'{self.machine.name}-cloud-init'

    @property
    def finalizer(self) -> str:
        return self.cfg.reconcile.finalizer

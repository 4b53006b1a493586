"""Cluster-management store access: machine requests, owners, and secrets."""

from __future__ import annotations

import os
from pathlib import Path

from loguru import logger

from .errors import (
    BootstrapDataInvalidError,
    BootstrapDataMissingError,
    NotFoundError,
    PlatformError,
)
from .model import MachineRequest, OwnerCluster, OwnerMachine
from .runtime import KubectlClient
from .util import b64decode_text, ensure_dir

log = logger

MACHINE_RESOURCE = 'harvestermachines.infrastructure.cluster.x-k8s.io'
INFRA_CLUSTER_RESOURCE = 'harvesterclusters.infrastructure.cluster.x-k8s.io'
CAPI_MACHINE_RESOURCE = 'machines.cluster.x-k8s.io'
CAPI_CLUSTER_RESOURCE = 'clusters.cluster.x-k8s.io'
SECRET_RESOURCE = 'secrets'

BOOTSTRAP_DATA_KEY = 'value'
IDENTITY_KUBECONFIG_KEY = 'kubeconfig'


def secret_value(secret: dict, key: str) -> str | None:
    data = secret.get('data') or {}
    if key in data:
        return b64decode_text(data[key])
    string_data = secret.get('stringData') or {}
    if key in string_data:
        return str(string_data[key])
    return None


class ManagementStore(KubectlClient):
    """The cluster-management side: HarvesterMachines and Cluster API objects."""

    def get_machine(self, namespace: str, name: str) -> MachineRequest:
        return MachineRequest.from_object(
            self.get(MACHINE_RESOURCE, name, namespace)
        )

    def get_owner_machine(self, machine: MachineRequest) -> OwnerMachine | None:
        owner_name = machine.owner_machine_name()
        if not owner_name:
            return None
        return OwnerMachine.from_object(
            self.get(CAPI_MACHINE_RESOURCE, owner_name, machine.namespace)
        )

    def get_owner_cluster(self, owner: OwnerMachine) -> OwnerCluster | None:
        if not owner.cluster_name:
            return None
        try:
            obj = self.get(
                CAPI_CLUSTER_RESOURCE, owner.cluster_name, owner.namespace
            )
        except NotFoundError:
            return None
        return OwnerCluster.from_object(obj)

    def get_bootstrap_data(self, namespace: str, secret_name: str) -> str:
        secret = self.get(SECRET_RESOURCE, secret_name, namespace)
        try:
            value = secret_value(secret, BOOTSTRAP_DATA_KEY)
        except ValueError as ex:
            raise BootstrapDataInvalidError(
                f'cannot decode {BOOTSTRAP_DATA_KEY!r} in secret '
                f'{namespace}/{secret_name}: {ex}'
            ) from ex
        if value is None:
            raise BootstrapDataMissingError(
                f'no {BOOTSTRAP_DATA_KEY!r} key found in secret '
                f'{namespace}/{secret_name}'
            )
        return value

    def fetch_platform_kubeconfig(
        self, cluster: OwnerCluster, state_dir: str | Path
    ) -> Path:
        """Write the HarvesterCluster identity kubeconfig to the state dir."""
        ref = cluster.infrastructure_ref
        infra = self.get(INFRA_CLUSTER_RESOURCE, ref['name'], ref['namespace'])
        ident = (infra.get('spec') or {}).get('identitySecret') or {}
        name = ident.get('name', '')
        namespace = ident.get('namespace') or ref['namespace']
        if not name:
            raise PlatformError(
                f'HarvesterCluster {ref["namespace"]}/{ref["name"]} has no '
                'spec.identitySecret'
            )
        secret = self.get(SECRET_RESOURCE, name, namespace)
        try:
            kubeconfig = secret_value(secret, IDENTITY_KUBECONFIG_KEY)
        except ValueError as ex:
            raise PlatformError(
                f'cannot decode {IDENTITY_KUBECONFIG_KEY!r} in identity '
                f'secret {namespace}/{name}: {ex}'
            ) from ex
        if kubeconfig is None:
            raise PlatformError(
                f'identity secret {namespace}/{name} has no '
                f'{IDENTITY_KUBECONFIG_KEY!r} key'
            )
        out_dir = Path(state_dir) / 'kubeconfigs'
        ensure_dir(out_dir)
        fpath = out_dir / f'{namespace}_{name}.kubeconfig'
        fpath.write_text(kubeconfig, encoding='utf-8')
        os.chmod(fpath, 0o600)
        log.debug('Platform kubeconfig written to {}', fpath)
        return fpath

    def update_status(self, machine: MachineRequest) -> None:
        self.patch(
            MACHINE_RESOURCE,
            machine.name,
            machine.namespace,
            {'status': machine.status.as_dict()},
            subresource='status',
        )

    def patch_finalizers(self, machine: MachineRequest) -> None:
        self.patch(
            MACHINE_RESOURCE,
            machine.name,
            machine.namespace,
            {'metadata': {'finalizers': list(machine.finalizers)}},
        )

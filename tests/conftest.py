"""In-memory stand-ins for the management store and the Harvester platform."""

from __future__ import annotations

import copy

import pytest

from hvmachine.config import HVMachineConfig
from hvmachine.errors import (
    AlreadyExistsError,
    BootstrapDataMissingError,
    NotFoundError,
)
from hvmachine.model import MachineRequest, OwnerCluster, OwnerMachine
from hvmachine.scope import Scope

FINALIZER = 'harvestermachine.infrastructure.cluster.x-k8s.io'

BOOTSTRAP_DATA = """\
#cloud-config
write_files:
  - path: /etc/kubeadm.yaml
    content: "kind: InitConfiguration"
runcmd:
  - kubeadm init --config /etc/kubeadm.yaml
"""


class FakePlatform:
    def __init__(self):
        self.vms: dict[tuple[str, str], dict] = {}
        self.instances: dict[tuple[str, str], list[dict]] = {}
        self.images: dict[str, list[dict]] = {}
        self.keypairs: dict[tuple[str, str], dict] = {}
        self.secrets: dict[tuple[str, str], dict] = {}
        self.calls: list[tuple] = []
        self.fail: dict[str, Exception] = {}

    def _call(self, op, *args):
        self.calls.append((op, *args))
        if op in self.fail:
            raise self.fail[op]

    def ops(self) -> list[str]:
        return [c[0] for c in self.calls]

    def get_vm(self, namespace, name):
        self._call('get_vm', namespace, name)
        try:
            return copy.deepcopy(self.vms[(namespace, name)])
        except KeyError:
            raise NotFoundError(f'virtualmachines {name} (NotFound)') from None

    def create_vm(self, vm):
        meta = vm['metadata']
        key = (meta['namespace'], meta['name'])
        self._call('create_vm', *key)
        if key in self.vms:
            raise AlreadyExistsError(f'virtualmachines {key[1]} (AlreadyExists)')
        self.vms[key] = copy.deepcopy(vm)
        return vm

    def delete_vm(self, namespace, name):
        self._call('delete_vm', namespace, name)
        if self.vms.pop((namespace, name), None) is None:
            raise NotFoundError(f'virtualmachines {name} (NotFound)')

    def list_vm_instances(self, namespace, vm_name):
        self._call('list_vm_instances', namespace, vm_name)
        return copy.deepcopy(self.instances.get((namespace, vm_name), []))

    def list_images(self, namespace):
        self._call('list_images', namespace)
        return copy.deepcopy(self.images.get(namespace, []))

    def get_keypair(self, namespace, name):
        self._call('get_keypair', namespace, name)
        try:
            return copy.deepcopy(self.keypairs[(namespace, name)])
        except KeyError:
            raise NotFoundError(f'keypairs {name} (NotFound)') from None

    def create_secret(self, secret):
        meta = secret['metadata']
        key = (meta['namespace'], meta['name'])
        self._call('create_secret', *key)
        if key in self.secrets:
            raise AlreadyExistsError(f'secrets {key[1]} (AlreadyExists)')
        self.secrets[key] = copy.deepcopy(secret)
        return secret

    def delete_secret(self, namespace, name):
        self._call('delete_secret', namespace, name)
        if self.secrets.pop((namespace, name), None) is None:
            raise NotFoundError(f'secrets {name} (NotFound)')


class FakeStore:
    def __init__(self):
        self.machines: dict[tuple[str, str], MachineRequest] = {}
        self.owner: OwnerMachine | None = None
        self.cluster: OwnerCluster | None = None
        self.bootstrap: dict[tuple[str, str], str | None] = {}
        self.calls: list[tuple] = []
        self.fail: dict[str, Exception] = {}
        self.persisted_status: list[dict] = []
        self.persisted_finalizers: list[list[str]] = []

    def _call(self, op, *args):
        self.calls.append((op, *args))
        if op in self.fail:
            raise self.fail[op]

    def ops(self) -> list[str]:
        return [c[0] for c in self.calls]

    def get_machine(self, namespace, name):
        self._call('get_machine', namespace, name)
        try:
            return copy.deepcopy(self.machines[(namespace, name)])
        except KeyError:
            raise NotFoundError(f'harvestermachines {name} (NotFound)') from None

    def get_owner_machine(self, machine):
        self._call('get_owner_machine', machine.name)
        return self.owner

    def get_owner_cluster(self, owner):
        self._call('get_owner_cluster', owner.name)
        return self.cluster

    def get_bootstrap_data(self, namespace, secret_name):
        self._call('get_bootstrap_data', namespace, secret_name)
        value = self.bootstrap.get((namespace, secret_name))
        if value is None:
            raise BootstrapDataMissingError(
                f"no 'value' key found in secret {namespace}/{secret_name}"
            )
        return value

    def fetch_platform_kubeconfig(self, cluster, state_dir):
        self._call('fetch_platform_kubeconfig', cluster.name)
        return f'{state_dir}/kubeconfigs/{cluster.name}.kubeconfig'

    def update_status(self, machine):
        self._call('update_status', machine.name)
        self.persisted_status.append(machine.status.as_dict())

    def patch_finalizers(self, machine):
        self._call('patch_finalizers', machine.name)
        self.persisted_finalizers.append(list(machine.finalizers))


def machine_object(
    name='worker-0',
    namespace='capi',
    *,
    finalizers=(FINALIZER,),
    deletion_timestamp=None,
    annotations=None,
    volumes=None,
    status=None,
) -> dict:
    meta = {
        'name': name,
        'namespace': namespace,
        'finalizers': list(finalizers),
        'annotations': dict(annotations or {}),
        'ownerReferences': [
            {
                'apiVersion': 'cluster.x-k8s.io/v1beta1',
                'kind': 'Machine',
                'name': f'{name}-owner',
            }
        ],
    }
    if deletion_timestamp:
        meta['deletionTimestamp'] = deletion_timestamp
    return {
        'metadata': meta,
        'spec': {
            'targetNamespace': 'vms',
            'cpu': 2,
            'memory': '4Gi',
            'sshKeyPair': 'ops-key',
            'volumes': (
                volumes
                if volumes is not None
                else [
                    {
                        'volumeType': 'image',
                        'imageName': 'images/ubuntu-22.04',
                        'volumeSize': '40Gi',
                    }
                ]
            ),
        },
        'status': status or {},
    }


def image_object(namespace, name, display_name, storage_class='') -> dict:
    obj = {
        'metadata': {'namespace': namespace, 'name': name},
        'spec': {'displayName': display_name},
    }
    if storage_class:
        obj['status'] = {'storageClassName': storage_class}
    return obj


def instance_object(name, *ips, namespace='vms') -> dict:
    return {
        'metadata': {'name': name, 'namespace': namespace},
        'status': {
            'interfaces': [{'name': 'nic-1', 'ipAddress': ip} for ip in ips]
        },
    }


def running_vm(name='worker-0', namespace='vms', running=True) -> dict:
    return {
        'metadata': {'name': name, 'namespace': namespace},
        'spec': {'running': running},
    }


@pytest.fixture
def platform() -> FakePlatform:
    p = FakePlatform()
    p.images['images'] = [
        image_object('images', 'image-abcde', 'ubuntu-22.04'),
        image_object('images', 'image-fghij', 'debian-12'),
    ]
    p.keypairs[('vms', 'ops-key')] = {
        'metadata': {'name': 'ops-key', 'namespace': 'vms'},
        'spec': {'publicKey': 'ssh-ed25519 AAAAC3Nza ops@example'},
    }
    return p


@pytest.fixture
def store() -> FakeStore:
    s = FakeStore()
    s.machines[('capi', 'worker-0')] = MachineRequest.from_object(
        machine_object()
    )
    s.owner = OwnerMachine(
        name='worker-0-owner',
        namespace='capi',
        cluster_name='demo',
        bootstrap_data_secret='worker-0-bootstrap',
    )
    s.cluster = OwnerCluster(
        name='demo',
        namespace='capi',
        infrastructure_ready=True,
        infrastructure_ref={'name': 'demo-hv', 'namespace': 'capi'},
    )
    s.bootstrap[('capi', 'worker-0-bootstrap')] = BOOTSTRAP_DATA
    return s


@pytest.fixture
def make_scope(platform, store):
    def _make(machine: dict | None = None, **kwargs) -> Scope:
        obj = machine if machine is not None else machine_object()
        return Scope(
            machine=MachineRequest.from_object(obj),
            owner_machine=kwargs.pop('owner_machine', store.owner),
            cluster=kwargs.pop('cluster', store.cluster),
            platform=platform,
            store=store,
            cfg=kwargs.pop('cfg', HVMachineConfig()),
        )

    return _make

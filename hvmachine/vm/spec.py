"""VM definition synthesis: SSH key, cloud-init secret, and KubeVirt spec."""

from __future__ import annotations

import json
import textwrap

import yaml
from loguru import logger

from ..cloudinit import CloudInitMerger
from ..errors import (
    AlreadyExistsError,
    CloudInitError,
    InvalidMachineSpecError,
    NotFoundError,
    SSHKeyNotFoundError,
    SynthesisError,
)
from ..images import build_storage_claim_annotation, resolve_machine_image
from ..scope import Scope
from ..util import b64encode_text, random_id

log = logger

CREATOR_LABEL = 'harvesterhci.io/creator'
VM_NAME_LABEL = 'harvesterhci.io/vmName'
VM_NAME_PREFIX_LABEL = 'harvesterhci.io/vmNamePrefix'

VM_CLAIM_TEMPLATES_ANNOTATION = 'harvesterhci.io/volumeClaimTemplates'
VM_NETWORK_IPS_ANNOTATION = 'networks.harvesterhci.io/ips'
DISK_NAMES_ANNOTATION = 'harvesterhci.io/diskNames'
SSH_NAMES_ANNOTATION = 'harvesterhci.io/sshNames'

CLOUD_INIT_USER_DATA_KEY = 'userData'
NIC_NAME = 'nic-1'
BOOT_DISK_NAME = 'disk-0'
CLOUD_INIT_DISK_NAME = 'cloudinitdisk'
ANTI_AFFINITY_TOPOLOGY_KEY = 'kubernetes.io/hostname'

CLOUD_INIT_BASE = textwrap.dedent(
    """
    package_update: true
    packages:
      - qemu-guest-agent
    runcmd:
      - - systemctl
        - enable
        - --now
        - qemu-guest-agent.service
    """
)


def claim_name_for(vm_name: str) -> str:
    return f'{vm_name}-disk-0-{random_id()}'


def vm_labels() -> dict[str, str]:
    return {CREATOR_LABEL: 'harvester'}


def instance_labels(vm_name: str) -> dict[str, str]:
    return {
        **vm_labels(),
        VM_NAME_LABEL: vm_name,
        VM_NAME_PREFIX_LABEL: vm_name,
    }


def validate_machine_request(scope: Scope) -> None:
    machine = scope.machine
    if not machine.target_namespace:
        raise InvalidMachineSpecError(
            f'{machine.namespace}/{machine.name} has no spec.targetNamespace'
        )
    if machine.cpu < 1:
        raise InvalidMachineSpecError(
            f'{machine.namespace}/{machine.name} requests {machine.cpu} CPUs'
        )
    if not machine.memory:
        raise InvalidMachineSpecError(
            f'{machine.namespace}/{machine.name} has no spec.memory'
        )


def fetch_ssh_key(scope: Scope) -> dict:
    key_name = scope.machine.ssh_keypair
    if not key_name:
        raise SSHKeyNotFoundError(
            f'{scope.machine.name} does not reference an SSH key pair'
        )
    try:
        keypair = scope.platform.get_keypair(scope.target_namespace, key_name)
    except NotFoundError as ex:
        raise SSHKeyNotFoundError(
            f'SSH key pair {scope.target_namespace}/{key_name} not found'
        ) from ex
    if not (keypair.get('spec') or {}).get('publicKey'):
        raise SSHKeyNotFoundError(
            f'SSH key pair {scope.target_namespace}/{key_name} has no public key'
        )
    scope.log.debug('SSH key pair {} exists', key_name)
    return keypair


def ssh_keys_fragment(public_key: str) -> str:
    return yaml.safe_dump({'ssh_authorized_keys': [public_key.strip()]})


def build_cloud_init(scope: Scope, keypair: dict) -> str:
    """Merge the guest-agent base, the SSH key, and the bootstrap data."""
    bootstrap = scope.store.get_bootstrap_data(
        scope.owner_machine.namespace, scope.owner_machine.bootstrap_data_secret
    )
    merger = CloudInitMerger.from_policy(
        scope.cfg.reconcile.unknown_cloud_init_keys
    )
    try:
        doc = merger.merge(
            [
                CLOUD_INIT_BASE,
                ssh_keys_fragment(keypair['spec']['publicKey']),
                bootstrap,
            ]
        )
    except CloudInitError as ex:
        raise SynthesisError(
            f'unable to merge cloud-init data for {scope.machine.name}: {ex}'
        ) from ex
    return merger.render(doc)


def ensure_cloud_init_secret(scope: Scope, user_data: str) -> None:
    # Create only: changing init data of a booted VM has no effect.
    secret = {
        'apiVersion': 'v1',
        'kind': 'Secret',
        'metadata': {
            'name': scope.cloud_init_secret_name,
            'namespace': scope.target_namespace,
        },
        'data': {CLOUD_INIT_USER_DATA_KEY: b64encode_text(user_data)},
    }
    try:
        scope.platform.create_secret(secret)
    except AlreadyExistsError:
        scope.log.info(
            'cloud-init secret {} already exists, keeping it',
            scope.cloud_init_secret_name,
        )
        return
    scope.log.info('Created cloud-init secret {}', scope.cloud_init_secret_name)


def _anti_affinity(vm_name: str) -> dict:
    return {
        'podAntiAffinity': {
            'preferredDuringSchedulingIgnoredDuringExecution': [
                {
                    'weight': 1,
                    'podAffinityTerm': {
                        'topologyKey': ANTI_AFFINITY_TOPOLOGY_KEY,
                        'labelSelector': {
                            'matchLabels': {VM_NAME_PREFIX_LABEL: vm_name}
                        },
                    },
                }
            ]
        }
    }


def synthesize_vm_template(
    scope: Scope, claim_name: str, labels: dict[str, str]
) -> dict:
    """Build the VM instance template, creating the cloud-init secret.

    Steps run in order and each one aborts synthesis on failure.
    """
    keypair = fetch_ssh_key(scope)
    user_data = build_cloud_init(scope, keypair)
    scope.log.debug('cloud-init final value is {}', user_data)
    ensure_cloud_init_secret(scope, user_data)

    name = scope.vm_name
    cpu = scope.machine.cpu
    keypair_name = keypair.get('metadata', {}).get('name') or (
        scope.machine.ssh_keypair
    )
    return {
        'metadata': {
            'annotations': {
                DISK_NAMES_ANNOTATION: json.dumps([claim_name]),
                SSH_NAMES_ANNOTATION: json.dumps([keypair_name]),
            },
            'labels': dict(labels),
        },
        'spec': {
            'hostname': name,
            'networks': [
                {
                    'name': NIC_NAME,
                    'multus': {'networkName': scope.cfg.platform.network_name},
                }
            ],
            'volumes': [
                {
                    'name': BOOT_DISK_NAME,
                    'persistentVolumeClaim': {'claimName': claim_name},
                },
                {
                    'name': CLOUD_INIT_DISK_NAME,
                    'cloudInitNoCloud': {
                        'secretRef': {'name': scope.cloud_init_secret_name}
                    },
                },
            ],
            'domain': {
                # Cores, sockets and threads all mirror the requested count.
                'cpu': {'cores': cpu, 'sockets': cpu, 'threads': cpu},
                'devices': {
                    'inputs': [{'bus': 'usb', 'type': 'tablet', 'name': 'tablet'}],
                    'interfaces': [
                        {'name': NIC_NAME, 'model': 'virtio', 'bridge': {}}
                    ],
                    'disks': [
                        {'name': BOOT_DISK_NAME, 'disk': {'bus': 'virtio'}},
                        {'name': CLOUD_INIT_DISK_NAME, 'disk': {'bus': 'virtio'}},
                    ],
                },
                'resources': {'requests': {'memory': scope.machine.memory}},
            },
            'affinity': _anti_affinity(name),
        },
    }


def build_vm_definition(scope: Scope, claim_name: str | None = None) -> dict:
    """Resolve the image and synthesize the full VirtualMachine object."""
    validate_machine_request(scope)
    name = scope.vm_name
    claim_name = claim_name or claim_name_for(name)
    volume, image = resolve_machine_image(scope.platform, scope.machine.volumes)
    claim_annotation = build_storage_claim_annotation(
        volume,
        claim_name,
        scope.target_namespace,
        image,
        storage_class_prefix=scope.cfg.platform.storage_class_prefix,
    )
    template = synthesize_vm_template(scope, claim_name, instance_labels(name))
    return {
        'apiVersion': 'kubevirt.io/v1',
        'kind': 'VirtualMachine',
        'metadata': {
            'name': name,
            'namespace': scope.target_namespace,
            'annotations': {
                VM_CLAIM_TEMPLATES_ANNOTATION: claim_annotation,
                VM_NETWORK_IPS_ANNOTATION: '[]',
            },
            'labels': vm_labels(),
        },
        'spec': {'running': True, 'template': template},
    }

"""Typed views over the machine request and its owning Cluster API objects."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

PAUSED_ANNOTATION = 'cluster.x-k8s.io/paused'
CLUSTER_NAME_LABEL = 'cluster.x-k8s.io/cluster-name'
CAPI_GROUP = 'cluster.x-k8s.io'

ADDRESS_EXTERNAL_IP = 'ExternalIP'


@dataclass
class Volume:
    volume_type: str = ''
    image_name: str = ''
    volume_size: str = ''

    @classmethod
    def from_dict(cls, raw: dict) -> 'Volume':
        return cls(
            volume_type=str(raw.get('volumeType', '') or ''),
            image_name=str(raw.get('imageName', '') or ''),
            volume_size=str(raw.get('volumeSize', '') or ''),
        )


@dataclass(frozen=True)
class MachineAddress:
    type: str
    address: str

    def as_dict(self) -> dict[str, str]:
        return {'type': self.type, 'address': self.address}


@dataclass
class MachineStatus:
    ready: bool = False
    addresses: list[MachineAddress] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: dict | None) -> 'MachineStatus':
        raw = raw or {}
        return cls(
            ready=bool(raw.get('ready', False)),
            addresses=[
                MachineAddress(
                    str(a.get('type', '')), str(a.get('address', ''))
                )
                for a in raw.get('addresses') or []
                if isinstance(a, dict)
            ],
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            'ready': self.ready,
            'addresses': [a.as_dict() for a in self.addresses],
        }


@dataclass
class MachineRequest:
    """A HarvesterMachine: the declared VM the reconciler keeps in sync."""

    name: str
    namespace: str
    target_namespace: str = ''
    cpu: int = 0
    memory: str = ''
    volumes: list[Volume] = field(default_factory=list)
    ssh_keypair: str = ''
    annotations: dict[str, str] = field(default_factory=dict)
    finalizers: list[str] = field(default_factory=list)
    owner_references: list[dict] = field(default_factory=list)
    deletion_timestamp: str | None = None
    status: MachineStatus = field(default_factory=MachineStatus)

    @classmethod
    def from_object(cls, obj: dict) -> 'MachineRequest':
        meta = obj.get('metadata') or {}
        spec = obj.get('spec') or {}
        return cls(
            name=meta.get('name', ''),
            namespace=meta.get('namespace', ''),
            target_namespace=spec.get('targetNamespace', '') or '',
            cpu=int(spec.get('cpu', 0) or 0),
            memory=str(spec.get('memory', '') or ''),
            volumes=[
                Volume.from_dict(v)
                for v in spec.get('volumes') or []
                if isinstance(v, dict)
            ],
            ssh_keypair=spec.get('sshKeyPair', '') or '',
            annotations=dict(meta.get('annotations') or {}),
            finalizers=list(meta.get('finalizers') or []),
            owner_references=list(meta.get('ownerReferences') or []),
            deletion_timestamp=meta.get('deletionTimestamp'),
            status=MachineStatus.from_dict(obj.get('status')),
        )

    @property
    def deleting(self) -> bool:
        return bool(self.deletion_timestamp)

    @property
    def paused(self) -> bool:
        return PAUSED_ANNOTATION in self.annotations

    def has_finalizer(self, finalizer: str) -> bool:
        return finalizer in self.finalizers

    def add_finalizer(self, finalizer: str) -> bool:
        if finalizer in self.finalizers:
            return False
        self.finalizers.append(finalizer)
        return True

    def remove_finalizer(self, finalizer: str) -> bool:
        if finalizer not in self.finalizers:
            return False
        self.finalizers = [f for f in self.finalizers if f != finalizer]
        return True

    def owner_machine_name(self) -> str | None:
        for ref in self.owner_references:
            api_version = str(ref.get('apiVersion', ''))
            if ref.get('kind') == 'Machine' and api_version.startswith(
                CAPI_GROUP + '/'
            ):
                return ref.get('name')
        return None


@dataclass
class OwnerMachine:
    """The Cluster API Machine that owns a machine request."""

    name: str
    namespace: str
    cluster_name: str = ''
    bootstrap_data_secret: str | None = None

    @classmethod
    def from_object(cls, obj: dict) -> 'OwnerMachine':
        meta = obj.get('metadata') or {}
        spec = obj.get('spec') or {}
        bootstrap = spec.get('bootstrap') or {}
        return cls(
            name=meta.get('name', ''),
            namespace=meta.get('namespace', ''),
            cluster_name=(meta.get('labels') or {}).get(CLUSTER_NAME_LABEL, ''),
            bootstrap_data_secret=bootstrap.get('dataSecretName'),
        )


@dataclass
class OwnerCluster:
    """The Cluster API Cluster the owning Machine belongs to."""

    name: str
    namespace: str
    paused: bool = False
    infrastructure_ready: bool = False
    infrastructure_ref: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_object(cls, obj: dict) -> 'OwnerCluster':
        meta = obj.get('metadata') or {}
        spec = obj.get('spec') or {}
        status = obj.get('status') or {}
        ref = spec.get('infrastructureRef') or {}
        return cls(
            name=meta.get('name', ''),
            namespace=meta.get('namespace', ''),
            paused=bool(spec.get('paused', False))
            or PAUSED_ANNOTATION in (meta.get('annotations') or {}),
            infrastructure_ready=bool(status.get('infrastructureReady', False)),
            infrastructure_ref={
                'name': ref.get('name', ''),
                'namespace': ref.get('namespace') or meta.get('namespace', ''),
            },
        )


@dataclass(frozen=True)
class ResolvedImage:
    namespace: str
    name: str
    display_name: str = ''
    storage_class_name: str = ''

    @property
    def image_id(self) -> str:
        return f'{self.namespace}/{self.name}'

    @classmethod
    def from_object(cls, obj: dict) -> 'ResolvedImage':
        meta = obj.get('metadata') or {}
        return cls(
            namespace=meta.get('namespace', ''),
            name=meta.get('name', ''),
            display_name=(obj.get('spec') or {}).get('displayName', ''),
            storage_class_name=(obj.get('status') or {}).get(
                'storageClassName', ''
            ),
        )

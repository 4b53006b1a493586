"""Client for the Harvester/KubeVirt objects backing a machine."""

from __future__ import annotations

from .runtime import KubectlClient

VM_RESOURCE = 'virtualmachines.kubevirt.io'
VMI_RESOURCE = 'virtualmachineinstances.kubevirt.io'
IMAGE_RESOURCE = 'virtualmachineimages.harvesterhci.io'
KEYPAIR_RESOURCE = 'keypairs.harvesterhci.io'
SECRET_RESOURCE = 'secrets'

VM_NAME_LABEL = 'harvesterhci.io/vmName'


class PlatformClient(KubectlClient):
    """Virtualization platform access; missing objects raise NotFoundError."""

    def get_vm(self, namespace: str, name: str) -> dict:
        return self.get(VM_RESOURCE, name, namespace)

    def create_vm(self, vm: dict) -> dict:
        return self.create(vm)

    def delete_vm(self, namespace: str, name: str) -> None:
        self.delete(VM_RESOURCE, name, namespace)

    def list_vm_instances(self, namespace: str, vm_name: str) -> list[dict]:
        return self.list(
            VMI_RESOURCE, namespace, selector=f'{VM_NAME_LABEL}={vm_name}'
        )

    def list_images(self, namespace: str) -> list[dict]:
        return self.list(IMAGE_RESOURCE, namespace)

    def get_keypair(self, namespace: str, name: str) -> dict:
        return self.get(KEYPAIR_RESOURCE, name, namespace)

    def create_secret(self, secret: dict) -> dict:
        return self.create(secret)

    def delete_secret(self, namespace: str, name: str) -> None:
        self.delete(SECRET_RESOURCE, name, namespace)

"""Project-specific exception types."""

from __future__ import annotations


class HVMachineError(RuntimeError):
    """Base error for domain-level hvmachine failures."""


class ConfigError(HVMachineError):
    """Raised when the reconciler configuration cannot be used."""


class ReconcileCancelled(HVMachineError):
    """Raised at a platform call boundary once cancellation was requested."""


class PlatformError(HVMachineError):
    """Transient failure talking to the management store or the platform."""

    def __init__(self, message: str, *, stderr: str = ''):
        self.stderr = stderr
        super().__init__(message)


class NotFoundError(PlatformError):
    """The requested object does not exist."""


class AlreadyExistsError(PlatformError):
    """An object with the same name already exists."""


class VMCreateConflictError(AlreadyExistsError):
    """A VM appeared between the existence check and the create call."""


class DataIntegrityError(HVMachineError):
    """Inputs are present but unusable; retrying will not help until fixed."""


class MalformedReferenceError(DataIntegrityError):
    """An image reference is not of the form ``<namespace>/<display-name>``."""


class ImageNotFoundError(DataIntegrityError):
    """No image in the namespace carries the requested display name."""


class InvalidMachineSpecError(DataIntegrityError):
    """A required machine request field is missing or unusable."""


class ImageVolumeCardinalityError(DataIntegrityError):
    """The machine request has no volume naming an image."""


class SSHKeyNotFoundError(DataIntegrityError):
    """The referenced SSH key pair is absent or has no public key."""


class BootstrapDataMissingError(DataIntegrityError):
    """The bootstrap data secret lacks the expected payload key."""


class BootstrapDataInvalidError(DataIntegrityError):
    """The bootstrap data payload is not base64-encoded UTF-8 text."""


class CloudInitError(DataIntegrityError):
    """Base error for cloud-init fragment merging."""


class FragmentParseError(CloudInitError):
    def __init__(self, index: int, detail: str):
        self.index = index
        super().__init__(
            f'cloud-init fragment {index} could not be parsed: {detail}'
        )


class AccumulatorTypeError(CloudInitError):
    def __init__(self, key: str, found: object):
        self.key = key
        super().__init__(
            f'cloud-init section {key!r} must accumulate into a list, '
            f'found {type(found).__name__}'
        )


class MergeConflictError(CloudInitError):
    def __init__(self, key: str, old: object, new: object):
        self.key = key
        super().__init__(
            f'cloud-init fragments disagree on {key!r}: {old!r} != {new!r}'
        )


class SynthesisError(HVMachineError):
    """Building the VM definition failed; nothing was submitted."""


class NoInstancesFoundError(HVMachineError):
    """A VM exists but the platform reports no instance for it."""


class FinalizerError(HVMachineError):
    """The finalizer marker could not be released."""

"""Resolve ``<namespace>/<display-name>`` image references and describe the
boot disk claim that clones the resolved image."""

from __future__ import annotations

import json
from typing import Sequence

from loguru import logger

from .errors import (
    ImageNotFoundError,
    ImageVolumeCardinalityError,
    InvalidMachineSpecError,
    MalformedReferenceError,
)
from .model import ResolvedImage, Volume

log = logger

IMAGE_ID_ANNOTATION = 'harvesterhci.io/imageId'
DEFAULT_STORAGE_CLASS_PREFIX = 'longhorn-'


def image_volumes(volumes: Sequence[Volume]) -> list[Volume]:
    return [v for v in volumes if v.image_name]


def select_image_volume(volumes: Sequence[Volume]) -> Volume:
    """Return the volume whose image backs the boot disk.

    Only one image per machine is supported; extra image volumes are ignored.
    """
    candidates = image_volumes(volumes)
    if not candidates:
        raise ImageVolumeCardinalityError(
            'machine request has no volume with an imageName'
        )
    if len(candidates) > 1:
        log.warning(
            'Machine request names {} images; only {} is used',
            len(candidates),
            candidates[0].image_name,
        )
    return candidates[0]


def parse_image_reference(ref: str) -> tuple[str, str]:
    parts = ref.split('/')
    if len(parts) != 2 or not all(parts):
        raise MalformedReferenceError(
            f'image reference {ref!r} is malformed, expecting '
            '<NAMESPACE>/<NAME> format'
        )
    return parts[0], parts[1]


def resolve_image(platform, ref: str) -> ResolvedImage:
    namespace, display_name = parse_image_reference(ref)
    found = platform.list_images(namespace)
    if not found:
        raise ImageNotFoundError(f'no VM images found in namespace {namespace}')
    for obj in found:
        if (obj.get('spec') or {}).get('displayName') == display_name:
            image = ResolvedImage.from_object(obj)
            log.debug('Resolved image {} to {}', ref, image.image_id)
            return image
    raise ImageNotFoundError(
        f'impossible to find VM image {display_name!r} in namespace {namespace}'
    )


def resolve_machine_image(
    platform, volumes: Sequence[Volume]
) -> tuple[Volume, ResolvedImage]:
    volume = select_image_volume(volumes)
    return volume, resolve_image(platform, volume.image_name)


def build_storage_claim_annotation(
    volume: Volume,
    claim_name: str,
    namespace: str,
    image: ResolvedImage,
    *,
    storage_class_prefix: str = DEFAULT_STORAGE_CLASS_PREFIX,
) -> str:
    if not volume.volume_size:
        raise InvalidMachineSpecError(
            f'image volume {volume.image_name!r} has no volumeSize'
        )
    storage_class = image.storage_class_name or (
        storage_class_prefix + image.name
    )
    claim = {
        'metadata': {
            'name': claim_name,
            'namespace': namespace,
            'annotations': {IMAGE_ID_ANNOTATION: image.image_id},
        },
        'spec': {
            'accessModes': ['ReadWriteMany'],
            'resources': {'requests': {'storage': volume.volume_size}},
            'volumeMode': 'Block',
            'storageClassName': storage_class,
        },
    }
    return json.dumps([claim], separators=(',', ':'))

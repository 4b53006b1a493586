"""Offline helpers: cloud-init merging and image reference resolution."""

from __future__ import annotations

from pathlib import Path

import scriptconfig as scfg

from ..cloudinit import CloudInitMerger
from ..images import resolve_image
from ._common import _BaseCommand, _load_cfg, _make_platform


class CloudInitMergeCLI(_BaseCommand):
    """Merge cloud-init fragment files, in order, into one #cloud-config."""

    fragments = scfg.Value(
        [], position=1, nargs='+', help='Fragment files (YAML or JSON).'
    )
    unknown_keys = scfg.Value(
        '', help='override or drop (default: from config).'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        policy = args.unknown_keys or cfg.reconcile.unknown_cloud_init_keys
        merger = CloudInitMerger.from_policy(policy)
        texts = [Path(p).read_text(encoding='utf-8') for p in args.fragments]
        print(merger.render(merger.merge(texts)), end='')
        return 0


class CloudInitModalCLI(scfg.ModalCLI):
    """cloud-init helpers."""

    merge = CloudInitMergeCLI


class ImageResolveCLI(_BaseCommand):
    """Resolve a <namespace>/<display-name> image reference on Harvester."""

    ref = scfg.Value('', position=1, help='Image reference.')
    platform_kubeconfig = scfg.Value('', help='Harvester kubeconfig.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        platform = _make_platform(cfg, args.platform_kubeconfig)
        image = resolve_image(platform, str(args.ref))
        sc = image.storage_class_name or '(default)'
        print(f'{image.image_id} display={image.display_name} storage_class={sc}')
        return 0


class ImageModalCLI(scfg.ModalCLI):
    """VM image helpers."""

    resolve = ImageResolveCLI

"""Shared CLI options and config/client construction helpers."""

from __future__ import annotations

from pathlib import Path

import scriptconfig as scfg
from loguru import logger

from ..config import HVMachineConfig, default_config_path, load_or_default
from ..platform import PlatformClient
from ..store import ManagementStore

log = logger


class _BaseCommand(scfg.DataConfig):
    """Base options shared by all commands."""

    # ``config`` is our TOML path; scriptconfig's own ``--config`` conflicts.
    __special_options__ = False

    config = scfg.Value(
        None, help='Path to config TOML (default: user config dir).'
    )
    verbose = scfg.Value(
        0,
        short_alias=['v'],
        isflag='counter',
        help='Increase verbosity (-v, -vv).',
    )
    kubeconfig = scfg.Value(
        '', help='Management cluster kubeconfig (overrides config).'
    )


class _MachineCommand(_BaseCommand):
    """Options identifying one HarvesterMachine."""

    # DataConfig reserves ``namespace`` for the parsed argparse namespace.
    machine_namespace = scfg.Value(
        'default', short_alias=['n'], help='HarvesterMachine namespace.'
    )
    name = scfg.Value('', position=1, help='HarvesterMachine name.')


def _cfg_path(p: str | None) -> Path:
    return Path(p).expanduser().resolve() if p else default_config_path()


def _load_cfg(
    config_path: str | None, *, kubeconfig: str = ''
) -> HVMachineConfig:
    path = Path(config_path).expanduser() if config_path else None
    cfg = load_or_default(path).expanded_paths()
    if kubeconfig:
        cfg.management.kubeconfig = kubeconfig
    return cfg


def _make_store(cfg: HVMachineConfig, cancel=None) -> ManagementStore:
    return ManagementStore(
        kubectl=cfg.management.kubectl,
        kubeconfig=cfg.management.kubeconfig,
        context=cfg.management.context,
        cancel=cancel,
    )


def _make_platform(
    cfg: HVMachineConfig, kubeconfig: str = ''
) -> PlatformClient:
    return PlatformClient(
        kubectl=cfg.management.kubectl,
        kubeconfig=kubeconfig or cfg.platform.kubeconfig,
    )


def _require_name(name: str) -> str:
    name = str(name or '').strip()
    if not name:
        raise RuntimeError('A HarvesterMachine name is required.')
    return name

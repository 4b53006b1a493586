"""Reconciler configuration: dataclass sections persisted as TOML."""

from __future__ import annotations

import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path

import ubelt as ub

from .errors import ConfigError
from .util import expand

DEFAULT_FINALIZER = 'harvestermachine.infrastructure.cluster.x-k8s.io'
UNKNOWN_KEY_POLICIES = ('override', 'drop')


@dataclass
class ManagementConfig:
    kubectl: str = 'kubectl'
    kubeconfig: str = ''
    context: str = ''


@dataclass
class PlatformConfig:
    # Empty means: use the identity secret of the owning HarvesterCluster.
    kubeconfig: str = ''
    network_name: str = 'vlan1'
    storage_class_prefix: str = 'longhorn-'


@dataclass
class ReconcileConfig:
    finalizer: str = DEFAULT_FINALIZER
    fail_on_missing_instances: bool = False
    unknown_cloud_init_keys: str = 'override'


@dataclass
class PathsConfig:
    state_dir: str = '~/.cache/hvmachine'


@dataclass
class HVMachineConfig:
    management: ManagementConfig = field(default_factory=ManagementConfig)
    platform: PlatformConfig = field(default_factory=PlatformConfig)
    reconcile: ReconcileConfig = field(default_factory=ReconcileConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    verbosity: int = 1

    def expanded_paths(self) -> 'HVMachineConfig':
        self.paths.state_dir = expand(self.paths.state_dir)
        self.management.kubeconfig = (
            expand(self.management.kubeconfig)
            if self.management.kubeconfig
            else ''
        )
        self.platform.kubeconfig = (
            expand(self.platform.kubeconfig) if self.platform.kubeconfig else ''
        )
        return self

    def validate(self) -> 'HVMachineConfig':
        policy = self.reconcile.unknown_cloud_init_keys
        if policy not in UNKNOWN_KEY_POLICIES:
            raise ConfigError(
                'reconcile.unknown_cloud_init_keys must be one of '
                f'{", ".join(UNKNOWN_KEY_POLICIES)} (got {policy!r})'
            )
        if not self.reconcile.finalizer.strip():
            raise ConfigError('reconcile.finalizer must not be empty')
        return self


_SECTIONS = ('management', 'platform', 'reconcile', 'paths')


def default_config_path() -> Path:
    p = ub.Path.appdir('hvmachine', type='config').ensuredir()
    return Path(p) / 'config.toml'


def _toml_escape(s: str) -> str:
    return s.replace('\\', '\\\\').replace('"', '\\"')


def dump_toml(cfg: HVMachineConfig) -> str:
    d = asdict(cfg)
    lines: list[str] = []
    # Bare keys must precede the first table header to stay top-level.
    if cfg.verbosity != 1:
        lines.append(f'verbosity = {cfg.verbosity}')
        lines.append('')
    for section, body in d.items():
        if isinstance(body, dict):
            lines.append(f'[{section}]')
            for k, v in body.items():
                if isinstance(v, bool):
                    lines.append(f'{k} = {"true" if v else "false"}')
                elif isinstance(v, int):
                    lines.append(f'{k} = {v}')
                else:
                    lines.append(f'{k} = "{_toml_escape(str(v))}"')
            lines.append('')
    return '\n'.join(lines).rstrip() + '\n'


def load(path: Path) -> HVMachineConfig:
    try:
        raw = tomllib.loads(path.read_text(encoding='utf-8'))
    except tomllib.TOMLDecodeError as ex:
        raise ConfigError(f'Invalid config TOML in {path}: {ex}') from ex
    cfg = HVMachineConfig()
    for section in _SECTIONS:
        if section in raw and isinstance(raw[section], dict):
            obj = getattr(cfg, section)
            for k, v in raw[section].items():
                if hasattr(obj, k):
                    setattr(obj, k, v)
    if 'verbosity' in raw:
        cfg.verbosity = int(raw['verbosity'])
    return cfg.validate()


def load_or_default(path: Path | None) -> HVMachineConfig:
    fpath = path or default_config_path()
    if not fpath.exists():
        return HVMachineConfig()
    return load(fpath)


def save(path: Path, cfg: HVMachineConfig) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_toml(cfg), encoding='utf-8')

"""Tests for hvmachine CLI commands and argv handling."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from hvmachine.cli.config import ConfigInitCLI, ConfigShowCLI
from hvmachine.cli.machine import ReconcileCLI, StatusCLI
from hvmachine.cli.main import _count_verbose, _normalize_argv, main
from hvmachine.cli.tools import CloudInitMergeCLI
from hvmachine.errors import ConfigError
from hvmachine.model import MachineRequest
from hvmachine.results import MachinePhase, ReconcileResult

from conftest import machine_object


def test_normalize_argv() -> None:
    assert _normalize_argv(['cloud-init', 'merge']) == ['cloud_init', 'merge']
    assert _normalize_argv(['cloudinit']) == ['cloud_init']
    assert _normalize_argv(['rec', 'm1']) == ['reconcile', 'm1']
    assert _normalize_argv(['status', 'm1']) == ['status', 'm1']
    assert _normalize_argv([]) == []


def test_count_verbose() -> None:
    assert _count_verbose(['reconcile', '-vv', '--verbose']) == 3
    assert _count_verbose(['reconcile', '-n', 'capi']) == 0


def test_cloud_init_merge_cli(tmp_path: Path, capsys) -> None:
    a = tmp_path / 'a.yaml'
    b = tmp_path / 'b.yaml'
    a.write_text('packages: [a]\nhostname: one\n', encoding='utf-8')
    b.write_text('packages: [b]\ntimezone: UTC\n', encoding='utf-8')
    rc = CloudInitMergeCLI.main(
        argv=False,
        config=str(tmp_path / 'missing.toml'),
        fragments=[str(a), str(b)],
    )
    assert rc == 0
    out = capsys.readouterr().out
    assert out.startswith('#cloud-config\n')
    doc = yaml.safe_load(out)
    assert doc == {'packages': ['a', 'b'], 'hostname': 'one', 'timezone': 'UTC'}


def test_cloud_init_merge_cli_drop_unknown(tmp_path: Path, capsys) -> None:
    a = tmp_path / 'a.yaml'
    a.write_text('runcmd: [ls]\ncustom_thing: 1\n', encoding='utf-8')
    CloudInitMergeCLI.main(
        argv=False,
        config=str(tmp_path / 'missing.toml'),
        fragments=[str(a)],
        unknown_keys='drop',
    )
    doc = yaml.safe_load(capsys.readouterr().out)
    assert doc == {'runcmd': ['ls']}


def test_cloud_init_merge_cli_rejects_unknown_policy(tmp_path: Path) -> None:
    a = tmp_path / 'a.yaml'
    a.write_text('runcmd: [ls]\n', encoding='utf-8')
    with pytest.raises(ConfigError, match='override, drop'):
        CloudInitMergeCLI.main(
            argv=False,
            config=str(tmp_path / 'missing.toml'),
            fragments=[str(a)],
            unknown_keys='foo',
        )


def test_config_init_refuses_overwrite(tmp_path: Path, capsys) -> None:
    cfg_path = tmp_path / 'hvmachine' / 'config.toml'
    rc = ConfigInitCLI.main(
        argv=False, config=str(cfg_path), kubeconfig='/tmp/mgmt.yaml'
    )
    assert rc == 0
    assert 'kubeconfig = "/tmp/mgmt.yaml"' in cfg_path.read_text(
        encoding='utf-8'
    )
    rc = ConfigInitCLI.main(argv=False, config=str(cfg_path))
    assert rc == 2
    assert 'already exists' in capsys.readouterr().err
    rc = ConfigInitCLI.main(argv=False, config=str(cfg_path), force=True)
    assert rc == 0


def test_config_show_defaults(tmp_path: Path, capsys) -> None:
    rc = ConfigShowCLI.main(argv=False, config=str(tmp_path / 'none.toml'))
    assert rc == 0
    out = capsys.readouterr().out
    assert '(defaults)' in out
    assert '[reconcile]' in out


def test_reconcile_cli_prints_outcome(monkeypatch, tmp_path: Path, capsys):
    seen = {}

    class FakeReconciler:
        def __init__(self, store, cfg, *, cancel=None):
            seen['cancel'] = cancel

        def reconcile(self, namespace, name):
            seen['key'] = (namespace, name)
            return ReconcileResult(
                requeue=True, phase=MachinePhase.ACTIVE, detail='VM created'
            )

    monkeypatch.setattr(
        'hvmachine.cli.machine.MachineReconciler', FakeReconciler
    )
    rc = ReconcileCLI.main(
        argv=False,
        config=str(tmp_path / 'none.toml'),
        machine_namespace='capi',
        name='worker-0',
    )
    assert rc == 0
    assert seen['key'] == ('capi', 'worker-0')
    assert seen['cancel'] is not None and not seen['cancel'].is_set()
    out = capsys.readouterr().out
    assert out.strip() == 'capi/worker-0: phase=active requeue=yes VM created'

    ReconcileCLI.main(
        argv=False,
        config=str(tmp_path / 'none.toml'),
        machine_namespace='capi',
        name='worker-0',
        json=True,
    )
    payload = json.loads(capsys.readouterr().out)
    assert payload['requeue'] is True
    assert payload['detail'] == 'VM created'


def test_reconcile_cli_parses_namespace_flag(
    monkeypatch, tmp_path: Path, capsys
) -> None:
    seen = []

    class FakeReconciler:
        def __init__(self, store, cfg, *, cancel=None):
            pass

        def reconcile(self, namespace, name):
            seen.append((namespace, name))
            return ReconcileResult(phase=MachinePhase.PAUSED, detail='paused')

    monkeypatch.setattr(
        'hvmachine.cli.machine.MachineReconciler', FakeReconciler
    )
    rc = ReconcileCLI.main(
        argv=['-n', 'capi', 'worker-0', '--config', str(tmp_path / 'x.toml')]
    )
    assert rc == 0
    assert seen == [('capi', 'worker-0')]
    assert capsys.readouterr().out.startswith('capi/worker-0: phase=paused')


def test_reconcile_cli_requires_name(tmp_path: Path) -> None:
    with pytest.raises(RuntimeError, match='name is required'):
        ReconcileCLI.main(argv=False, config=str(tmp_path / 'none.toml'))


def test_status_cli_skips_vm_probe_without_platform(
    monkeypatch, tmp_path: Path, capsys
) -> None:
    class Store:
        def get_machine(self, namespace, name):
            return MachineRequest.from_object(machine_object(name, namespace))

    monkeypatch.setattr('hvmachine.cli.machine._make_store', lambda cfg: Store())
    rc = StatusCLI.main(
        argv=False,
        config=str(tmp_path / 'none.toml'),
        machine_namespace='capi',
        name='worker-0',
    )
    assert rc == 0
    out = capsys.readouterr().out
    assert 'HarvesterMachine capi/worker-0' in out
    assert '➖ VM - platform not queried' in out


def test_main_reports_errors_with_exit_code(tmp_path: Path, capsys) -> None:
    bad = tmp_path / 'bad.yaml'
    bad.write_text('- just\n- a list\n', encoding='utf-8')
    with pytest.raises(SystemExit) as ex:
        main(
            [
                'cloud-init',
                'merge',
                str(bad),
                '--config',
                str(tmp_path / 'none.toml'),
            ]
        )
    assert ex.value.code == 2
    assert 'ERROR:' in capsys.readouterr().err

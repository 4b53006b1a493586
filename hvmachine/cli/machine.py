"""CLI commands that reconcile or inspect a single HarvesterMachine."""

from __future__ import annotations

import json
import signal
import threading

import scriptconfig as scfg

from ..reconcile import MachineReconciler
from ..status import render_machine_status
from ._common import (
    _MachineCommand,
    _load_cfg,
    _make_platform,
    _make_store,
    _require_name,
    log,
)


class ReconcileCLI(_MachineCommand):
    """Run one reconciliation pass for a HarvesterMachine."""

    json = scfg.Value(False, isflag=True, help='Print the result as JSON.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        name = _require_name(args.name)
        cfg = _load_cfg(args.config, kubeconfig=args.kubeconfig)
        cancel = threading.Event()
        previous = signal.signal(signal.SIGINT, lambda *_: cancel.set())
        try:
            reconciler = MachineReconciler(
                _make_store(cfg, cancel), cfg, cancel=cancel
            )
            result = reconciler.reconcile(args.machine_namespace, name)
        finally:
            signal.signal(signal.SIGINT, previous)
        if args.json:
            print(json.dumps(result.as_dict(), indent=2))
        else:
            phase = result.phase.value if result.phase else '-'
            print(
                f'{args.machine_namespace}/{name}: phase={phase} '
                f'requeue={"yes" if result.requeue else "no"} {result.detail}'
            )
        return 0


class StatusCLI(_MachineCommand):
    """Show a HarvesterMachine's reported status and its VM."""

    platform_kubeconfig = scfg.Value(
        '', help='Harvester kubeconfig used to probe the VM (optional).'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        name = _require_name(args.name)
        cfg = _load_cfg(args.config, kubeconfig=args.kubeconfig)
        machine = _make_store(cfg).get_machine(args.machine_namespace, name)
        platform = None
        if args.platform_kubeconfig or cfg.platform.kubeconfig:
            platform = _make_platform(cfg, args.platform_kubeconfig)
        else:
            log.debug('No platform kubeconfig; skipping VM probe')
        print(
            render_machine_status(
                machine, finalizer=cfg.reconcile.finalizer, platform=platform
            )
        )
        return 0

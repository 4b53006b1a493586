"""kubectl command construction and typed error classification."""

from __future__ import annotations

import json
import threading
from typing import Any

from loguru import logger

from .errors import (
    AlreadyExistsError,
    NotFoundError,
    PlatformError,
    ReconcileCancelled,
)
from .util import CmdResult, run_cmd, shell_join

log = logger


def kubectl_cmd(
    *args: str,
    kubectl: str = 'kubectl',
    kubeconfig: str = '',
    context: str = '',
    namespace: str = '',
) -> list[str]:
    cmd = [kubectl]
    if kubeconfig:
        cmd.extend(['--kubeconfig', kubeconfig])
    if context:
        cmd.extend(['--context', context])
    if namespace:
        cmd.extend(['-n', namespace])
    cmd.extend(args)
    return cmd


def classify_error(cmd: list[str], res: CmdResult) -> PlatformError:
    detail = (res.stderr or res.stdout or '').strip()
    msg = f'{shell_join(cmd)} failed (code={res.code}): {detail}'
    if '(NotFound)' in detail:
        return NotFoundError(msg, stderr=detail)
    if '(AlreadyExists)' in detail:
        return AlreadyExistsError(msg, stderr=detail)
    return PlatformError(msg, stderr=detail)


class KubectlClient:
    """Namespaced get/list/create/delete/patch over one kubeconfig.

    Every call checks the cancellation event first so a cancelled pass stops
    at the next API boundary.
    """

    def __init__(
        self,
        *,
        kubectl: str = 'kubectl',
        kubeconfig: str = '',
        context: str = '',
        cancel: threading.Event | None = None,
    ):
        self.kubectl = kubectl
        self.kubeconfig = kubeconfig
        self.context = context
        self.cancel = cancel

    def _run(
        self,
        *args: str,
        namespace: str = '',
        input_text: str | None = None,
    ) -> CmdResult:
        if self.cancel is not None and self.cancel.is_set():
            raise ReconcileCancelled(
                f'cancelled before: kubectl {" ".join(args)}'
            )
        cmd = kubectl_cmd(
            *args,
            kubectl=self.kubectl,
            kubeconfig=self.kubeconfig,
            context=self.context,
            namespace=namespace,
        )
        res = run_cmd(cmd, capture=True, input_text=input_text)
        if res.code != 0:
            raise classify_error(cmd, res)
        return res

    def _run_json(self, *args: str, **kwargs) -> Any:
        res = self._run(*args, '-o', 'json', **kwargs)
        try:
            return json.loads(res.stdout or '{}')
        except json.JSONDecodeError as ex:
            raise PlatformError(
                f'kubectl returned invalid JSON for {" ".join(args)}: {ex}'
            ) from ex

    def get(self, resource: str, name: str, namespace: str) -> dict:
        return self._run_json('get', resource, name, namespace=namespace)

    def list(
        self, resource: str, namespace: str, *, selector: str = ''
    ) -> list[dict]:
        args = ['get', resource]
        if selector:
            args.extend(['-l', selector])
        data = self._run_json(*args, namespace=namespace)
        return list(data.get('items') or [])

    def create(self, obj: dict) -> dict:
        namespace = obj.get('metadata', {}).get('namespace', '')
        return self._run_json(
            'create',
            '-f',
            '-',
            namespace=namespace,
            input_text=json.dumps(obj),
        )

    def delete(self, resource: str, name: str, namespace: str) -> None:
        self._run('delete', resource, name, '--wait=false', namespace=namespace)

    def patch(
        self,
        resource: str,
        name: str,
        namespace: str,
        body: dict,
        *,
        subresource: str = '',
    ) -> dict:
        args = ['patch', resource, name, '--type', 'merge']
        args.extend(['-p', json.dumps(body)])
        if subresource:
            args.append(f'--subresource={subresource}')
        return self._run_json(*args, namespace=namespace)

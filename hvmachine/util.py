"""Shared helpers for subprocess execution, random names, and path handling."""

from __future__ import annotations

import base64
import os
import secrets
import shlex
import string
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from loguru import logger

log = logger

_ID_ALPHABET = string.ascii_lowercase + string.digits


@dataclass(frozen=True)
class CmdResult:
    code: int
    stdout: str
    stderr: str


def shell_join(cmd: Sequence[str]) -> str:
    return ' '.join(shlex.quote(c) for c in cmd)


def run_cmd(
    cmd: Sequence[str],
    *,
    capture: bool = True,
    text: bool = True,
    input_text: Optional[str] = None,
) -> CmdResult:
    log.opt(depth=1).debug('RUN: {}', shell_join(cmd))
    p = subprocess.run(
        list(cmd),
        input=input_text,
        capture_output=capture,
        text=text,
    )
    res = CmdResult(p.returncode, p.stdout or '', p.stderr or '')
    if p.returncode != 0:
        log.opt(depth=1).debug(
            'Command failed code={} cmd={} stderr={}',
            p.returncode,
            shell_join(cmd),
            res.stderr.strip(),
        )
    else:
        log.opt(depth=1).debug('Command ok code=0 cmd={}', shell_join(cmd))
    return res


def random_id(length: int = 5) -> str:
    """Short lowercase alphanumeric suffix usable in Kubernetes object names."""
    return ''.join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def b64encode_text(value: str) -> str:
    return base64.b64encode(value.encode('utf-8')).decode('ascii')


def b64decode_text(value: str) -> str:
    return base64.b64decode(value).decode('utf-8')


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def expand(path: str) -> str:
    return os.path.expandvars(os.path.expanduser(path))

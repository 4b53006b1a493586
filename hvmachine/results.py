"""Outcome types of a reconciliation pass."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class MachinePhase(enum.Enum):
    DELETING = 'deleting'
    PAUSED = 'paused'
    NEEDS_FINALIZER = 'needs-finalizer'
    AWAITING_INFRASTRUCTURE = 'awaiting-infrastructure'
    AWAITING_BOOTSTRAP_DATA = 'awaiting-bootstrap-data'
    ACTIVE = 'active'


@dataclass
class ReconcileResult:
    requeue: bool = False
    phase: MachinePhase | None = None
    detail: str = ''

    def as_dict(self) -> dict[str, object]:
        return {
            'requeue': self.requeue,
            'phase': self.phase.value if self.phase else None,
            'detail': self.detail,
        }

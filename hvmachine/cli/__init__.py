"""CLI package exports for top-level command entry points."""

from __future__ import annotations

from .main import HVMachineModalCLI, main

__all__ = ['HVMachineModalCLI', 'main']

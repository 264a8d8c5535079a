"""CLI package exports for top-level command entry points."""

from __future__ import annotations

from .main import OxVMModalCLI, main

__all__ = ['OxVMModalCLI', 'main']

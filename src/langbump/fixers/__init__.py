"""Fixer registration and the run orchestration built on it."""

from .registry import Fixer, FixerRegistry, register_ecosystem
from .runner import EcosystemReport, VersionValidationError, run_ecosystem, run_ecosystems

__all__ = [
    "Fixer",
    "FixerRegistry",
    "register_ecosystem",
    "EcosystemReport",
    "VersionValidationError",
    "run_ecosystem",
    "run_ecosystems",
]

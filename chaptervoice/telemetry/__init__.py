"""Observability helpers.

This package emits deterministic run events for auditing job progress.
"""

from .logger import RunLogger

__all__ = ["RunLogger"]

"""Transformation runners: contract, implementations and factory."""

from mediajobs.core.runners.base import RunHandle, TransformationRunner
from mediajobs.core.runners.factory import build_runner

__all__ = ["RunHandle", "TransformationRunner", "build_runner"]

"""
Error kinds raised by the analysis backends.

Only the pipeline catches these; everything above it (web layer, CLI) sees a
SoilAnalysisResult, with error=True on terminal failure.
"""
from __future__ import annotations

from typing import Optional


class SoilAnalysisError(Exception):
    """Base class for every analysis failure."""


class ImageDecodeError(SoilAnalysisError):
    """The image bytes could not be decoded locally."""


class RemoteAnalysisError(SoilAnalysisError):
    """Transport, HTTP, quota or timeout failure of the remote AI call."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status

    def __str__(self) -> str:
        base = super().__str__()
        return f"{base} (status {self.status})" if self.status is not None else base


class ClassificationError(SoilAnalysisError):
    """The heuristic had no usable signal (no colours, no filename hint)."""


class AnalysisFailed(SoilAnalysisError):
    """Every backend failed."""

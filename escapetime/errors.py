"""Exceptions raised by the escape-time renderer."""

from __future__ import annotations


class FractalError(Exception):
    """Base class for every error surfaced by a generation run."""


class InvalidParameters(FractalError, ValueError):
    """Generation parameters violate the renderer's input contract."""


class InternalFailure(FractalError, RuntimeError):
    """An unexpected fault interrupted the computation."""

from __future__ import annotations


class ValidationError(ValueError):
    """Caller input rejected before any external command runs."""


class JobStateError(RuntimeError):
    """Illegal transition on a bulk job descriptor."""

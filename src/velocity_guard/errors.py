"""Base error type shared by the engine's failure kinds."""

from __future__ import annotations


class VelocityGuardError(RuntimeError):
    """Base class; ``code`` is the stable error kind reported to callers."""

    code = "VELOCITY_GUARD_ERROR"


__all__ = ["VelocityGuardError"]

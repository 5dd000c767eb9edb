"""Velocity-based fraud detection engine for affiliate indications."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("velocity-guard")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"

__all__ = ["__version__"]

"""Multi-root provisioning for single-board computers sharing one boot partition."""

from .__version__ import __version__


__all__ = ["__version__"]

"""Mission Control: live status aggregation for an agent fleet."""

from .__version__ import __version__

__all__ = ["__version__"]

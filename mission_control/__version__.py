"""Version information for Mission Control."""

__version__ = "0.3.0"
__repository__ = "https://github.com/gastown-tools/mission-control"

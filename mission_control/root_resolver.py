"""Locate the root of the fleet workspace.

The root is the directory ``gt`` commands must run from. It is resolved in
priority order:

1. ``GT_BASE_PATH`` environment variable (always wins, never memoized)
2. A previously memoized result
3. ``gtBasePath`` from ~/.mission-control/config.json, if it holds a ``.gt`` marker
4. The nearest ancestor of cwd holding a ``.gt`` marker
5. cwd itself
"""

from __future__ import annotations

import json
import logging
import os

from .constants import CONFIG_PATH, MAX_ROOT_SEARCH_DEPTH, ROOT_ENV_VAR, WORKSPACE_MARKER
from .errors import ResolutionFailure
from .models import DashboardConfig, ResolvedRoot

logger = logging.getLogger(__name__)


def _expand_home(path: str) -> str:
    if path.startswith("~"):
        return os.path.join(os.path.expanduser("~"), path[1:].lstrip("/\\"))
    return path


def load_config(config_path: str | None = None) -> DashboardConfig:
    """Read the optional config file.

    Expected format:
    {
        "gtBasePath": "~/gt",
        "binPaths": ["~/.local/bin", "/opt/homebrew/bin"]
    }

    A missing or malformed file gives an empty config.
    """
    path = config_path or CONFIG_PATH
    if not os.path.exists(path):
        return DashboardConfig()
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.debug("Ignoring unreadable config %s: %s", path, e)
        return DashboardConfig()
    if not isinstance(data, dict):
        return DashboardConfig()

    base = data.get("gtBasePath")
    bins = data.get("binPaths")
    return DashboardConfig(
        gt_base_path=_expand_home(base) if isinstance(base, str) and base else None,
        bin_paths=[_expand_home(p) for p in bins if isinstance(p, str)] if isinstance(bins, list) else [],
    )


def find_workspace_root(start: str, max_levels: int = MAX_ROOT_SEARCH_DEPTH) -> str:
    """Walk up from ``start`` to the first directory holding the workspace marker."""
    current = os.path.abspath(start)
    for _ in range(max_levels):
        if os.path.isdir(os.path.join(current, WORKSPACE_MARKER)):
            return current
        parent = os.path.dirname(current)
        if parent == current:
            break
        current = parent
    raise ResolutionFailure(f"No {WORKSPACE_MARKER} directory within {max_levels} levels of {start}")


class RootResolver:
    """Resolves and memoizes the fleet root for the life of the process.

    Call :meth:`reset` after the config file changes.
    """

    def __init__(self, config_path: str | None = None, env: dict[str, str] | None = None):
        self.config_path = config_path
        self._env = env
        self._cached: str | None = None

    @property
    def env(self):
        return os.environ if self._env is None else self._env

    def config(self) -> DashboardConfig:
        return load_config(self.config_path)

    def _from_config(self) -> str:
        base = self.config().gt_base_path
        if not base:
            raise ResolutionFailure("No gtBasePath configured")
        if not os.path.isdir(os.path.join(base, WORKSPACE_MARKER)):
            raise ResolutionFailure(f"Configured gtBasePath {base} has no {WORKSPACE_MARKER}")
        return base

    def resolve(self) -> str:
        """Return the fleet root. Never raises."""
        override = self.env.get(ROOT_ENV_VAR)
        if override:
            return override

        if self._cached:
            return self._cached

        for source in (self._from_config, lambda: find_workspace_root(os.getcwd())):
            try:
                self._cached = source()
                logger.debug("Resolved fleet root: %s", self._cached)
                return self._cached
            except ResolutionFailure as e:
                logger.debug("%s", e)

        return os.getcwd()

    def resolved(self) -> ResolvedRoot:
        return ResolvedRoot(path=self.resolve(), bin_search_dirs=self.config().bin_paths)

    def reset(self) -> None:
        """Forget the memoized root."""
        self._cached = None

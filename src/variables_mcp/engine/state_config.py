"""State directory configuration.

Each working directory gets its own state directory, keyed by a SHA256 hash
of the CWD, so two projects never share a variable database by accident.

Architecture:
    ~/.variables/
      config.yml            # Optional engine configuration
      states/
        <hash-of-cwd>/
          variables.db      # Variable store
          cache.db          # SQLite cache backend (when enabled)
"""

from __future__ import annotations

import hashlib
from pathlib import Path

VARIABLES_HOME_DIRNAME = ".variables"


class StateConfig:
    """State directory configuration for the variables MCP server.

    Multiple server instances started from the same directory share the same
    state.

    Example:
        # Project A: /home/user/project-a
        StateConfig.get_state_dir()
        # Returns: ~/.variables/states/a1b2c3d4e5f6a7b8/
    """

    @staticmethod
    def get_home_dir() -> Path:
        """Root directory for config and state: ~/.variables/"""
        return Path.home() / VARIABLES_HOME_DIRNAME

    @staticmethod
    def get_state_dir() -> Path:
        """Get state directory for current working directory.

        Creates the directory if it doesn't exist.

        Returns:
            Path to state directory: ~/.variables/states/<hash-of-cwd>/
        """
        cwd_hash = hashlib.sha256(str(Path.cwd()).encode()).hexdigest()[:16]

        state_dir = StateConfig.get_home_dir() / "states" / cwd_hash
        state_dir.mkdir(parents=True, exist_ok=True)

        return state_dir

    @staticmethod
    def get_db_path() -> Path:
        """Variable store database: ~/.variables/states/<hash-of-cwd>/variables.db"""
        return StateConfig.get_state_dir() / "variables.db"

    @staticmethod
    def get_cache_path() -> Path:
        """SQLite cache file: ~/.variables/states/<hash-of-cwd>/cache.db"""
        return StateConfig.get_state_dir() / "cache.db"


__all__ = ["StateConfig"]

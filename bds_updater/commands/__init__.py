"""CLI command implementations for bds_updater.

This module contains the command-line interface implementations:
- update: Interactive update / version switch
- check: Report whether a newer stable release exists
- switch: Install a specific version non-interactively
- clear-cache: Remove the staged archive
"""

from bds_updater.commands.update import check, clear_cache, switch, update

__all__ = ["check", "clear_cache", "switch", "update"]

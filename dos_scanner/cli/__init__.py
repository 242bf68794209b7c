"""CLI module for dos-scanner.

Options can be given as CLI arguments or as DOS_* environment variables.
"""

from .main import build_config, build_provenance, cli, main

__all__ = [
    "cli",
    "main",
    "build_config",
    "build_provenance",
]

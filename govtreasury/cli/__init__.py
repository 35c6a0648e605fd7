"""
govtreasury command line interface.

Provides the ``govtreasury`` command for inspecting settings and replaying
governance scenarios.
"""

from .main import cli, main

__all__ = ["main", "cli"]

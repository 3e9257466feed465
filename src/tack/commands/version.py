"""Version command -- print build and platform information."""

from __future__ import annotations

import platform

from tack import __version__
from tack.context import PROG_NAME
from tack.output import print_data


def version_command() -> None:
    """Print version information."""
    print_data(f"{PROG_NAME} version {__version__}")
    print_data(f"  python:     {platform.python_version()}")
    print_data(f"  os/arch:    {platform.system().lower()}/{platform.machine().lower()}")

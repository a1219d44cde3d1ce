"""
Version of the lightclient package.

Override at build time with the env var LIGHTCLIENT_VERSION.
"""

from __future__ import annotations

import os

__version__ = os.getenv("LIGHTCLIENT_VERSION", "0.1.0")

__all__ = ["__version__"]

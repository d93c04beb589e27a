"""
Version information for partners_gateway package.

This module provides semantic versioning information following PEP 440.
"""

from __future__ import annotations

# Version components
VERSION_MAJOR = 1
VERSION_MINOR = 0
VERSION_PATCH = 0
VERSION_SUFFIX = ""  # e.g., "a1", "b2", "rc1", or "" for final

__version__ = f"{VERSION_MAJOR}.{VERSION_MINOR}.{VERSION_PATCH}{VERSION_SUFFIX}"

# Package metadata
PACKAGE_NAME = "partners-gateway"
SERVICE_NAME = "Coupang Partners API Gateway"


__all__ = [
    "__version__",
    "PACKAGE_NAME",
    "SERVICE_NAME",
]

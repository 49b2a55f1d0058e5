"""SGDK Helper - development environment orchestration for SGDK projects.

This package fetches and builds the tools needed to make Sega Mega Drive ROMs
with SGDK, optionally packages them into layered container images, and runs
ROM builds in whichever environment is ready.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]

"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

mkptool: publishing helper for package monorepos.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]

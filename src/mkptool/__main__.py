"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Allows `python -m mkptool`.
"""

from .cli import main

raise SystemExit(main())

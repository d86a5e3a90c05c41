"""Entry point for `python -m ledgerctl`.

Usage:
    python -m ledgerctl
    uv run python -m ledgerctl
"""

from __future__ import annotations

import asyncio

from ledgerctl.app import main

asyncio.run(main())

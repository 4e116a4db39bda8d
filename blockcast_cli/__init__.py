# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 BlockCast Contributors
"""
BlockCast CLI Module

Offline tools for running the resolution engine against a JSON snapshot.

Commands:
- run-pass <snapshot>: Run one resolution pass and print transitions
- preview-settlement <snapshot> <market_id>: Print a DISPUTABLE market's settlement plan
- config: Print the effective runtime configuration

Usage:
    python -m blockcast_cli run-pass snapshot.json --now 2025-03-01T00:00:00Z
    python -m blockcast_cli preview-settlement snapshot.json mkt-1
"""

from blockcast_cli.resolve_cmd import main

__all__ = ["main"]

if __name__ == "__main__":
    main()

"""Cache Bid Automation source package.

This package contains the bidding agent components:
- config: Configuration loading and management
- core: Escrow ledger, registry, pricing engine, automation cycle, oracle
- api: HTTP surface for owners and schedulers
- runner: Periodic automation loop
"""

from __future__ import annotations

__all__: list[str] = []

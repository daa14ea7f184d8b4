"""
Fundy - Personal Ledger Core

A personal finance ledger where every balance is derived from
transaction rows, never stored.

DESIGN PRINCIPLES:
1. AI proposes → Human confirms → Ledger records
2. Balances are projections, not counters
3. Paired moves commit together or not at all
4. Every rejection tells the user how to fix it
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Fundy Team"

"""
Trove - Core Package

The persistence and balance-keeping core of a personal finance app:
accounts, earnings, expenses and transfers in a local SQLite store.

DESIGN PRINCIPLES:
1. A balance always equals its initial balance plus its history
2. Fail early, fail visibly
3. No silent corrections
4. Every change to money is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Trove Team"

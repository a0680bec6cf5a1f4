"""
Simple Bank

A terminal-driven card banking simulator with Luhn-valid card numbers,
a SQLite-backed account ledger and atomic, overdraft-free transfers.
"""

__version__ = "1.0.0"

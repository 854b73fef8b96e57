"""
Marketplace unit-economics pricer.

Loads a seller's catalog cards, costs each pack size from the supplier's
product page, solves the sale price that keeps the desired margin after
tax and commission, and stores one row per (supplier product, pack size).
"""

__version__ = "1.0.0"

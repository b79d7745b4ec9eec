"""
Ahorro - Receipt Intelligence Package

Turns photos of receipts and invoices into structured financial records,
keeps them in a local collection, answers free-text questions over them
and summarises the current month's spending.

DESIGN PRINCIPLES:
1. One writer owns the collection
2. Readers only ever see immutable snapshots
3. Money is Decimal, never float
4. The extraction provider is optional - the pipeline works offline
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Ahorro Team"

"""
Lease Kernel

The financial core behind lease contracts and payment receipts:
- Deterministic field recalculation for rent, tax, duration and totals
- Receipt-to-invoice payment allocation
- Approval protection for finalized documents
- Balanced, append-only ledger postings with reversal
"""

__version__ = "0.1.0"

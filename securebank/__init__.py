"""
SecureBank Ledger Core

Money movement for the SecureBank internet-banking portal: deposits,
withdrawals, internal transfers and loan disbursement over a single
ledger, with Decimal arithmetic, locked units of work and an audit trail.
"""

__version__ = "1.0.0"

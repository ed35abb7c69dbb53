"""
Freshstock Kernel

Perishable inventory core for a multi-branch retail chain:
- Batch-level stock tracking with expiry dates
- Append-only mutation audit trail
- Declared transfer workflow
- Structured logging and typed errors
"""

__version__ = "0.1.0"

"""
Inventory Kernel

Multi-tenant stock ledger core:
- Per-location stock aggregates with explicit reserved / in-transit counters
- Cost layers (batches) attributed by FIFO, LIFO, AVERAGE or SPECIFIC
- Append-only movement trail and hash-chained audit log
- Transactional event outbox for channel webhooks
"""

__version__ = "0.1.0"

"""
Expense Tracker - Sync Core

Client-side core of a personal expense tracker: per-view record caches
kept current by owner-scoped change notifications, currency-normalized
aggregates, and receipt upload and signing.

DESIGN PRINCIPLES:
1. The remote store owns the data; caches only mirror full snapshots
2. The latest issued fetch wins; late results are discarded
3. A user never sees another user's records, not even briefly
4. Every subscription opened is closed exactly once
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Expense Tracker Team"

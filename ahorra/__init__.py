"""
Ahorra - Ledger Core

Persistence and aggregation core for a personal finance tracker:
users, income/expense transactions, monthly budgets and summaries.

DESIGN PRINCIPLES:
1. Validate before every write
2. Fail early, fail visibly (specific reasons, generic only for auth)
3. Storage backend is swappable (SQL on device, document store on web)
4. Notify listeners only after a write succeeds
5. No ambient global session - the session context is injected
"""

__version__ = "1.0.0"
__author__ = "Ahorra Team"

"""
Period Ledger - Source Package

Personal finance tracking in recurring billing periods (e.g. the 15th of
one month to the 14th of the next) instead of calendar months.

DESIGN PRINCIPLES:
1. Period math is pure - the start day is always passed in
2. Carry-over sync is idempotent - run it as often as you like
3. Money is integer minor units - no float drift, ever
4. One bucket payment per (account, period, bucket) - enforced by storage
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Period Ledger Team"

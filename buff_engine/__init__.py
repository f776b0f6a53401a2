"""Promotional XP bonus engine.

Decides which date-ruled bonuses are active at an instant, folds a user's
ledger of granted bonuses into one net XP multiplier, and checks weekly
bonuses against a server-authoritative weekday.
"""

__version__ = "0.1.0"

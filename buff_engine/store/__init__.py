"""
buff_engine.store — trusted backend boundary.

Modules:
  client — httpx client for the ledger procedures and weekday lookup.
  ledger — per-user read-through ledger mirror.
  grants — reward-claim and promotion auto-grant helpers.
"""

"""Engine layer — everything the XP-award and display code calls.

Modules
-------
stacking — additive ledger stack, multiplicative catalog combination
guard    — server-authoritative weekday check with local fallback
service  — ``BuffEngine`` query facade
xp       — XP award order of operations
monitor  — periodic asyncio recheck loop
"""

"""Date rule evaluation.

Modules
-------
evaluator — pure ``matches(rule, instant)`` over the five rule shapes
resolver  — duration windows with bounded lookback, upcoming preview
"""

"""
buff_engine.reporting — ASCII formatters for CLI output.
"""

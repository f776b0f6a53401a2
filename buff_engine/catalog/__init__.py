"""Buff catalog: immutable registry object and its JSON loader."""

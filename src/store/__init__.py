"""Relational history storage.

This package persists exchange events, snapshots, and guild prefixes
in SQLite and exposes the SDK client over them.
"""

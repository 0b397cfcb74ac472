"""Exchange event ingestion.

This package reads external exports and snapshot checkpoints, dedups
them, and appends new ownership transitions to the event log.
"""

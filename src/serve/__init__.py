"""History query services.

This package answers point-in-time ownership queries and encodes the
full timeline for one-shot client download.
"""

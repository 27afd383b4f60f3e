"""State/cache layer.

This package holds the in-memory snapshot of the gateway's state and the
protocol that keeps it in sync with the shared store.
"""

"""Reconciliation, scheduling, hashing, logging and release-signing helpers for CI runner fleets."""

__version__ = "0.1.0"

__all__ = [
    "deployment",
    "fakerunners",
    "hashing",
    "labels",
    "logsetup",
    "schedule",
    "signrel",
    "store",
    "volumes",
]
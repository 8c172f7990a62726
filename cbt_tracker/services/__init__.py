"""Service layer for the CBT Mood Tracker.

This package contains the business rules that sit between the Flask
route handlers and the database models: who may see which record, the
sharing ledger, therapist/patient links, exercises and the analysis of
ABC thought records.

Nothing in this package performs any HTTP handling. Services return
model instances or plain Python data structures, and raise exceptions
defined in ``cbt_tracker.errors`` when something goes wrong.
"""

from .analysis_service import analyze_abc_schema
from .exercise_service import compute_effectiveness, seed_catalog
from .sharing_service import share, share_record, query as query_shared

__all__ = [
    "analyze_abc_schema",
    "compute_effectiveness",
    "seed_catalog",
    "share",
    "share_record",
    "query_shared",
]

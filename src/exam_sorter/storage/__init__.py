"""
Session storage module.

Exports the single-session store.
"""

from exam_sorter.storage.session_store import (
    SessionStore,
    ProblemCollections,
)

__all__ = [
    "SessionStore",
    "ProblemCollections",
]

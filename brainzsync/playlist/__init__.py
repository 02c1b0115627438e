from .selection import SelectionConfig, SelectionResult, TARGET_SIZE, cap_by_artist, select_candidates
from .reconciler import (
    PlaylistReconciler,
    ReconcileError,
    build_generate_comment,
    build_import_comment,
)

__all__ = [
    "SelectionConfig",
    "SelectionResult",
    "TARGET_SIZE",
    "cap_by_artist",
    "select_candidates",
    "PlaylistReconciler",
    "ReconcileError",
    "build_generate_comment",
    "build_import_comment",
]

"""
Listings feature — pipeline state, agent log and image rows for a listing.

Public API:
    from features.listings import ProgressLog, ProgressEvent, ProgressKind
    from features.listings import db as listings_db
"""

from features.listings.models import (
    ImageType,
    ListingStatus,
    PipelineStep,
    ProgressEvent,
    ProgressKind,
)
from features.listings.progress_log import ProgressLog

__all__ = [
    "ImageType",
    "ListingStatus",
    "PipelineStep",
    "ProgressEvent",
    "ProgressKind",
    "ProgressLog",
]

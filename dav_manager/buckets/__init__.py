"""
Local bucket archive for contacts taken off the server.

Removed, moved and surplus contacts are written as vCards into
categorized folders so nothing is lost when the server copy goes.
"""

from dav_manager.buckets.store import (
    NEUTRAL_BUCKET,
    BucketCleanReport,
    BucketEntry,
    BucketStore,
)

__all__ = ["BucketStore", "BucketEntry", "BucketCleanReport", "NEUTRAL_BUCKET"]

"""Database layer."""

from nudgr.db.engine import Database
from nudgr.db.models import Base, Nudge, UTCDateTime, utc_now

__all__ = [
    # Engine
    "Database",
    # Models
    "Base",
    "Nudge",
    "UTCDateTime",
    "utc_now",
]

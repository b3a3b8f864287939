"""
Data models for sync operations.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict, Any


class BookStatus(str, Enum):
    UNREAD = "unread"
    READING = "reading"
    PAUSED = "paused"
    COMPLETED = "completed"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class BookCondition(str, Enum):
    NEW = "new"
    USED = "used"
    EBOOK = "ebook"
    OTHER = "other"


class SyncStatus(str, Enum):
    """Relationship of a local record to its remote copy."""
    SYNCED = "synced"
    PENDING = "pending"
    ERROR = "error"
    LOCAL_ONLY = "local_only"
    PENDING_DELETE = "pending_delete"


# Statuses picked up by an incremental pass
NEEDS_SYNC_STATUSES = (SyncStatus.PENDING, SyncStatus.ERROR, SyncStatus.LOCAL_ONLY)


class SyncState(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"
    OFFLINE = "offline"


class SyncMode(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"
    INITIAL = "initial"


class ConflictWinner(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a Z suffix."""
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return format_timestamp(datetime.now(timezone.utc))


@dataclass
class BookRecord:
    """A single book in the collection; the unit of sync."""
    id: str
    title: str
    created_at: str
    updated_at: str
    authors: List[str] = field(default_factory=list)

    # Catalog information
    isbn: Optional[str] = None
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    description: Optional[str] = None
    page_count: Optional[int] = None
    thumbnail_url: Optional[str] = None
    categories: List[str] = field(default_factory=list)

    # User data
    status: BookStatus = BookStatus.UNREAD
    priority: Priority = Priority.MEDIUM
    condition: BookCondition = BookCondition.NEW
    purchase_date: Optional[str] = None
    purchase_place: Optional[str] = None
    purchase_price: Optional[float] = None
    purchase_reason: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    notes: Optional[str] = None
    start_date: Optional[str] = None
    completed_date: Optional[str] = None
    current_page: Optional[int] = None

    # Sync bookkeeping
    sync_status: Optional[SyncStatus] = None
    owner_user_id: Optional[str] = None

    def __post_init__(self):
        self.status = BookStatus(self.status)
        self.priority = Priority(self.priority)
        self.condition = BookCondition(self.condition or BookCondition.NEW)
        if self.sync_status is not None:
            self.sync_status = SyncStatus(self.sync_status)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["priority"] = self.priority.value
        data["condition"] = self.condition.value
        data["sync_status"] = self.sync_status.value if self.sync_status else None
        return data


@dataclass
class SyncResult:
    """Result of a single sync pass."""
    success: bool = False
    uploaded: int = 0
    downloaded: int = 0
    deleted: int = 0
    conflicts: int = 0
    errors: List[str] = field(default_factory=list)

    # Run metadata
    mode: Optional[SyncMode] = None
    run_id: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def failure(cls, message: str, mode: Optional[SyncMode] = None) -> "SyncResult":
        """Result for a pass that raised before it could complete."""
        now = datetime.now(timezone.utc)
        return cls(
            success=False,
            errors=[message],
            mode=mode,
            started_at=now,
            completed_at=now,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "uploaded": self.uploaded,
            "downloaded": self.downloaded,
            "deleted": self.deleted,
            "conflicts": self.conflicts,
            "errors": list(self.errors),
            "mode": self.mode.value if self.mode else None,
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

"""
Last-write-wins conflict resolution between local and remote book versions.
"""

from datetime import datetime, timezone
from typing import Union

from dateutil.parser import isoparse

from booksync.sync.models import BookRecord, ConflictWinner
from booksync.utils.logging import get_logger

logger = get_logger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_timestamp(value: Union[str, datetime, None]) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive values are taken as UTC. Missing or malformed values parse as the
    Unix epoch so they lose against any valid timestamp.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            # PostgREST trims trailing zeros from fractional seconds
            parsed = isoparse(value.strip())
        except (AttributeError, TypeError, ValueError, OverflowError):
            logger.warning("Unparseable timestamp, treating as epoch", value=value)
            return EPOCH

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def resolve_conflict(local: BookRecord, remote: BookRecord) -> ConflictWinner:
    """
    Decide which version of the same book is authoritative.

    The later ``updated_at`` wins; ties go to the local version.
    """
    local_time = parse_timestamp(local.updated_at)
    remote_time = parse_timestamp(remote.updated_at)
    return ConflictWinner.LOCAL if local_time >= remote_time else ConflictWinner.REMOTE


def is_same_version(local: BookRecord, remote: BookRecord) -> bool:
    """True when both copies carry the same modification time."""
    return parse_timestamp(local.updated_at) == parse_timestamp(remote.updated_at)

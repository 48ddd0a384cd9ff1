"""
Base Pydantic models with common configurations.

Provides a base model that ensures all datetime fields are serialized
with UTC timezone.
"""
from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, PlainSerializer

from crashtrack.utils.time_utils import ensure_utc


def serialize_datetime_utc(dt: Optional[datetime]) -> Optional[str]:
    """
    Serialize datetime to ISO format with UTC timezone.

    Naive datetimes (as returned by SQLite) are assumed to be UTC.
    """
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()


# Type alias for datetime fields that should be serialized with UTC timezone
UTCDatetime = Annotated[datetime, PlainSerializer(serialize_datetime_utc, return_type=str)]


class APIBaseModel(BaseModel):
    """
    Base model for API responses.

    Allows building responses straight from ORM rows.
    """

    model_config = {
        "from_attributes": True,
    }

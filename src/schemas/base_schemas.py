from pydantic import AfterValidator, BaseModel, ConfigDict
from typing import Annotated, Generic, Optional, TypeVar
from datetime import datetime
from utils.clock import as_utc

T = TypeVar("T")

# Stored times are UTC; some backends hand them back without tzinfo
UTCDateTime = Annotated[datetime, AfterValidator(as_utc)]


class BaseSchema(BaseModel):
    """Base schema with common configuration"""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
        use_enum_values=True,
    )


class ApiResponse(BaseModel, Generic[T]):
    """Uniform response envelope.

    A successful response may carry no data (deletes, revokes); callers must
    treat a missing payload on success as valid.
    """

    success: bool = True
    data: Optional[T] = None
    error: Optional[str] = None


class MessageData(BaseSchema):
    """Payload for operations whose only result is an acknowledgement"""

    message: str

"""
Event Record Models.

Structured error events produced by the generation backends.
Field names on the wire are camelCase; the store uses snake_case columns.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import UUID4, BaseModel, ConfigDict, Field


class ErrorCategory(str, Enum):
    """Fixed set of categories an event may carry."""

    API_FAILURE = "API_FAILURE"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    SYSTEM_ERROR = "SYSTEM_ERROR"
    NETWORK_FAILURE = "NETWORK_FAILURE"


class EventRecord(BaseModel):
    """
    One synthetic error event.

    Immutable once built. Unknown keys in the backend payload are ignored.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    timestamp: datetime
    error_code: Optional[str] = Field(default=None, alias="errorCode")
    error: Optional[str] = None
    error_category: ErrorCategory = Field(alias="errorCategory")
    error_location: Optional[str] = Field(default=None, alias="errorLocation")
    api_name: Optional[str] = Field(default=None, alias="apiName")
    error_reason: Optional[str] = Field(default=None, alias="errorReason")
    aws_cluster: Optional[str] = Field(default=None, alias="awsCluster")
    action_to_be_taken: Optional[str] = Field(default=None, alias="actionToBeTaken")
    correlation_id: UUID4 = Field(alias="correlationId")
    order_id: UUID4 = Field(alias="orderId")
    service_name: Optional[str] = Field(default=None, alias="serviceName")
    error_stack_trace: Optional[str] = Field(default=None, alias="errorStackTrace")

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)

    def to_store_record(self) -> dict[str, Any]:
        """JSON-ready dict with snake_case column names."""
        return self.model_dump(mode="json", by_alias=False)

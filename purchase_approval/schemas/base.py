"""Base schemas and common types for the purchase approval API."""

from pydantic import BaseModel, ConfigDict


# =============================================================================
# BASE SCHEMAS
# =============================================================================


class ApprovalBaseModel(BaseModel):
    """Base model with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,  # Enable ORM mode
        populate_by_name=True,
        use_enum_values=True,
    )


class MessageResponse(ApprovalBaseModel):
    """Plain acknowledgement."""

    success: bool = True
    message: str


# =============================================================================
# ERROR RESPONSES
# =============================================================================


class ErrorDetail(ApprovalBaseModel):
    """Detailed error information."""

    field: str | None = None
    message: str
    code: str


class ErrorResponse(ApprovalBaseModel):
    """Standard error response format."""

    error: str
    message: str
    details: list[ErrorDetail] = []

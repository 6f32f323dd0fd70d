"""
app.schemas
~~~~~~~~~~~
Pydantic schemas and models for the API.
"""
from app.schemas.api_response import ApiResponse
from app.schemas.chat import (
    Message,
    MessageKind,
    Room,
    RoomSummary,
    User,
)
from app.schemas.results import FieldError, OperationResult

# Call model_rebuild to resolve forward references in generic Pydantic models.
ApiResponse.model_rebuild()
OperationResult.model_rebuild()

# /graphrag_core/errors.py

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class Failure(BaseModel):
    """The single failure value surfaced to the presentation layer."""
    kind: str = Field(description="Error kind tag: transport, backend, malformed_path, decode or validation.")
    message: str = Field(description="Short human-readable message.")
    operation: Optional[str] = Field(default=None, description="Name of the operation to retry, if known.")


class GraphRagError(Exception):
    """Base exception for every failure raised by the client core."""
    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_failure(self, operation: str = None) -> Failure:
        return Failure(kind=self.kind, message=self.message, operation=operation)


class TransportError(GraphRagError):
    """Network or HTTP-layer failure."""
    kind = "transport"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BackendError(GraphRagError):
    """Raised when the response envelope signals failure."""
    kind = "backend"

    def __init__(self, message: str, code: Any = None):
        super().__init__(message)
        self.code = code


class MalformedPathError(GraphRagError):
    """Structural inconsistency in a related-entity record."""
    kind = "malformed_path"

    def __init__(self, message: str, record: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.record = record


class DecodeError(GraphRagError):
    """A response or push message body could not be parsed."""
    kind = "decode"

    def __init__(self, message: str, raw: Any = None):
        super().__init__(message)
        self.raw = raw


class QueryValidationError(GraphRagError):
    """Rejected before any request was issued (blank question, blank entity name)."""
    kind = "validation"

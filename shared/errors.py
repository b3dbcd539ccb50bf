"""
Shared error handling for the Access Exceptions Layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class AccessLayerException(Exception):
    """Base exception for Access Exceptions services."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class RuleNotFoundError(AccessLayerException):
    """The requested rule does not exist upstream."""

    def __init__(self, rule_id: str, details: Optional[Dict[str, Any]] = None):
        self.rule_id = rule_id
        super().__init__("RULE_NOT_FOUND", f"Rule {rule_id} not found", details)


class StoreTransportError(AccessLayerException):
    """Network failure or non-success response from an external store."""

    def __init__(
        self,
        store: str,
        message: str = "Store request failed",
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.store = store
        self.status_code = status_code
        self.body = body
        merged = dict(details or {})
        if status_code is not None:
            merged["status_code"] = status_code
        if body:
            merged["body"] = body
        super().__init__("STORE_TRANSPORT_ERROR", f"{store}: {message}", merged)


class ExpressionFormatError(AccessLayerException):
    """Identity expression does not match the known grammar."""

    def __init__(self, expression: str, marker_present: bool = False):
        self.expression = expression
        self.marker_present = marker_present
        super().__init__(
            "EXPRESSION_FORMAT_UNRECOGNIZED",
            "Identity expression format not recognized",
            {"expression": expression, "marker_present": marker_present}
        )


class ConfigMissingError(AccessLayerException):
    """Required credentials or store bindings are absent."""

    def __init__(self, message: str = "Required configuration missing", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIG_MISSING", message, details)

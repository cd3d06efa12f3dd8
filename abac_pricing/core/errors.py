"""
Error taxonomy for the pricing engine and its HTTP surface.

Expected business outcomes (no matching rules, discount capped, approval
required) are never raised; they are encoded in the evaluation result.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class PricingEngineError(Exception):
    """Base exception for pricing evaluation failures."""

    code = "PRICING_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(code=self.code, message=self.message, details=self.details)


class InvalidRequest(PricingEngineError):
    """Caller supplied a bad quantity, price or identifier."""

    code = "INVALID_REQUEST"
    status_code = 400


class InvalidAmount(InvalidRequest):
    """A monetary amount could not be represented exactly."""

    code = "INVALID_AMOUNT"


class InvalidRuleDefinition(PricingEngineError):
    """Stored rule configuration is malformed."""

    code = "INVALID_RULE_DEFINITION"
    status_code = 422


class InvalidPolicyContext(PricingEngineError):
    """User pricing attributes are malformed."""

    code = "INVALID_POLICY_CONTEXT"
    status_code = 422


class DependencyUnavailable(PricingEngineError):
    """Rule repository or attribute provider could not be reached."""

    code = "DEPENDENCY_UNAVAILABLE"
    status_code = 503

from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Optional

import httpx


class CriteriaValidationError(ValueError):
    """Search criteria rejected before a query was compiled."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(format_validation_error(self.errors))


class QuickBooksAPIError(httpx.HTTPStatusError):
    """HTTP >= 400 from the QuickBooks Accounting API, with the Fault parsed out."""

    def __init__(self, message: str, *, request: httpx.Request, response: httpx.Response, payload: Any = None):
        super().__init__(message, request=request, response=response)
        self.payload = payload
        fault = _first_fault(payload)
        self.fault_message: Optional[str] = fault.get("Message")
        self.detail: Optional[str] = fault.get("Detail")
        self.code: Optional[str] = fault.get("code")
        self.element: Optional[str] = fault.get("element")
        self.error_description: Optional[str] = (
            payload.get("error_description") if isinstance(payload, dict) else None
        )

    @property
    def status_code(self) -> int:
        return self.response.status_code


def _first_fault(payload: Any) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        return {}
    # QBO spells it "Fault" in JSON bodies, "fault" in some query errors.
    fault = payload.get("Fault") or payload.get("fault") or {}
    errors = fault.get("Error") or fault.get("error") or []
    if errors and isinstance(errors[0], dict):
        return errors[0]
    return {}


ERROR_CODE_SUGGESTIONS: Dict[str, str] = {
    "500": "This is an internal QuickBooks error. Please try again later or contact QuickBooks support.",
    "401": "Authentication failed. Please check your access token and ensure it hasn't expired.",
    "3100": "A required field is missing. Please check that all required fields are provided.",
    "6000": "An object with this name already exists. Please use a different name or update the existing object.",
    "610": "Object not found. Please verify the ID is correct.",
    "6140": "One of the fields contains an invalid value. Please check the field values match QuickBooks requirements.",
    "4001": "This object is already deleted.",
    "270": "You don't have permission to perform this operation.",
}

HTTP_STATUS_MESSAGES: Dict[int, str] = {
    400: "Bad Request - The request was invalid",
    401: "Unauthorized - Authentication failed or token expired",
    403: "Forbidden - You don't have permission to access this resource",
    404: "Not Found - The requested resource doesn't exist",
    429: "Too Many Requests - Rate limit exceeded, please try again later",
    500: "Internal Server Error - QuickBooks encountered an error",
    503: "Service Unavailable - QuickBooks is temporarily unavailable",
}


def format_validation_error(errors: List[str]) -> str:
    lines = "\n".join(f"  - {e}" for e in errors)
    return f"Validation failed:\n{lines}"


def format_error(error: Any, context: Optional[str] = None) -> str:
    """Render any failure as one actionable message for the MCP client.

    QuickBooks Fault payloads are expanded into message, detail, code and
    offending field, with a hint for the well-known error codes.
    """
    operation = f" while trying to {context}" if context else ""

    if isinstance(error, CriteriaValidationError):
        return f"Error{operation}: {error}"

    if isinstance(error, QuickBooksAPIError):
        if error.fault_message or error.detail:
            parts = [f"Error{operation}:"]
            if error.fault_message:
                parts.append(error.fault_message)
            if error.detail:
                parts.append(f"\nDetails: {error.detail}")
            if error.code:
                parts.append(f"\nError Code: {error.code}")
            if error.element:
                parts.append(f"\nField: {error.element}")
            suggestion = ERROR_CODE_SUGGESTIONS.get(str(error.code)) if error.code else None
            if suggestion:
                parts.append(f"\n\nSuggestion: {suggestion}")
            return " ".join(parts)
        if error.error_description:
            return f"Error{operation}: {error.error_description}"
        status = error.status_code
        return f"Error{operation}: HTTP {status} - {HTTP_STATUS_MESSAGES.get(status, 'An unexpected error occurred')}"

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return f"Error{operation}: HTTP {status} - {HTTP_STATUS_MESSAGES.get(status, 'An unexpected error occurred')}"

    if isinstance(error, httpx.RequestError):
        return f"Error{operation}: Network error: {error}"

    if isinstance(error, BaseException):
        message = f"Error{operation}: {error}"
        if os.environ.get("QBO_DEBUG_ERRORS", "0").lower() in {"1", "true", "yes"}:
            message += f"\n\nException type: {type(error).__name__}"
        return message

    if isinstance(error, str):
        return f"Error{operation}: {error}"

    try:
        return f"Unknown error{operation}: {json.dumps(error, indent=2)}"
    except (TypeError, ValueError):
        return f"Unknown error{operation}: [Unable to serialize error]"

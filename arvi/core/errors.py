"""Error taxonomy and FastAPI handlers.

Every error that crosses a layer boundary is an AppError carrying a stable
``code`` and a ``details`` dict of structured metadata. Server-side failures
expose a generic public message; quota and authorization failures expose the
specific one.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import uuid4

from starlette.exceptions import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

from arvi.core.logging import get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500
    public_message = "Internal server error"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.details = details or {}
        self.request_id = request_id

    @property
    def client_message(self) -> str:
        return self.public_message if self.status_code >= 500 else self.message


# Input / contract

class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class NotFoundError(AppError, LookupError):
    code = "not_found"
    status_code = 404


# Authorization / quota

class AuthorizationError(AppError):
    code = "authorization_error"
    status_code = 403


class FeatureNotAvailableError(AuthorizationError):
    code = "feature_not_available"

    def __init__(self, plan_id: str, feature_key: str):
        super().__init__(
            f"Plan {plan_id} does not have access to {feature_key}",
            details={"plan_id": plan_id, "feature": feature_key},
        )


class ActiveSeriesLimitError(AuthorizationError):
    code = "active_series_limit_reached"

    def __init__(self, used: int, maximum: int):
        super().__init__(
            f"Active series limit reached: {used}/{maximum}",
            details={"used": used, "max": maximum},
        )
        self.used = used
        self.maximum = maximum


class InsufficientEnergyError(AppError):
    code = "insufficient_energy"
    status_code = 403

    def __init__(self, required: int, available: int):
        super().__init__(
            f"Insufficient energy: required {required}, available {available}",
            details={"required": required, "available": available},
        )
        self.required = required
        self.available = available


class TrialAlreadyUsedError(AppError):
    code = "trial_already_used"
    status_code = 400


# AI output contract

class OutputValidationError(AppError):
    code = "validation_failed"
    status_code = 422
    public_message = "Generated content did not pass validation"

    def __init__(self, message: str, violations: List[Dict[str, str]]):
        super().__init__(message, details={"violations": violations})
        self.violations = violations

    @property
    def client_message(self) -> str:
        return self.public_message


class MalformedOutputError(OutputValidationError):
    code = "malformed_output"


# Upstream AI

class AIGatewayError(AppError):
    code = "ai_unclassified_failure"
    status_code = 500
    retryable = False

    def __init__(self, message: str, *, provider: Optional[str] = None, model: Optional[str] = None):
        super().__init__(message, details={"provider": provider, "model": model})
        self.provider = provider
        self.model = model


class AITemporarilyUnavailableError(AIGatewayError):
    code = "ai_temporarily_unavailable"
    status_code = 503
    public_message = "AI service temporarily unavailable"
    retryable = True


class AIProviderRejectedError(AIGatewayError):
    code = "ai_provider_failure"
    status_code = 502
    public_message = "AI provider failure"


class AIUnclassifiedError(AIGatewayError):
    code = "ai_unclassified_failure"


class UnknownFunctionTypeError(AppError, KeyError):
    code = "unknown_function_type"
    status_code = 500

    def __init__(self, function_type: str):
        super().__init__(
            f'"{function_type}" is not a registered function type',
            details={"function_type": function_type},
        )

    def __str__(self) -> str:
        return self.message


# Persistence

class TransactionFailureError(AppError):
    code = "transaction_failure"
    status_code = 500
    public_message = "Transaction failed"

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        super().__init__(
            f"Transaction failed during {operation}",
            details={"operation": operation, "cause": type(cause).__name__ if cause else None},
        )
        self.operation = operation


class DataAccessFailureError(AppError):
    code = "data_access_failure"
    status_code = 500
    public_message = "Data access failure"

    def __init__(self, operation: str, resource: str):
        super().__init__(
            f"{resource} not found during {operation}",
            details={"operation": operation, "resource": resource},
        )
        self.operation = operation


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str, details: Optional[Dict[str, Any]] = None) -> dict:
    error: Dict[str, Any] = {"code": code, "message": message, "request_id": request_id}
    if details:
        error["details"] = details
    return {"error": error, "detail": message}


def _public_details(exc: AppError) -> Dict[str, Any]:
    # Operator context (operation, cause, provider) stays in the logs.
    if exc.status_code >= 500:
        return {}
    return exc.details


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    payload = _error_payload(exc.code, exc.client_message, rid, _public_details(exc))
    logger = logging.getLogger("arvi")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={
            "request_id": rid,
            "error_code": exc.code,
            "error_message": exc.message,
            "status": exc.status_code,
            "error_details": exc.details,
        },
    )
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    message = exc.detail if exc.detail else "HTTP error"
    payload = _error_payload(code, message, rid)
    logger = logging.getLogger("arvi")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("arvi")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"})
    payload = _error_payload("internal_error", "Unexpected error", rid)
    response = JSONResponse(status_code=500, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    rid = _extract_request_id(request)
    violations = [
        {"field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"), "reason": err.get("msg", "")}
        for err in exc.errors()
    ]
    logger = logging.getLogger("arvi")
    logger.warning("request.invalid", extra={"request_id": rid, "error_code": "validation_error"})
    payload = _error_payload("validation_error", "Request validation failed", rid, {"violations": violations})
    response = JSONResponse(status_code=400, content=payload)
    response.headers["x-request-id"] = rid
    return response

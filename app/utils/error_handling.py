"""
Centralized Error Handling for Mshahara Payroll

This module provides:
- Custom exception hierarchy for the payroll engine
- Standardized error responses
- Error logging
- Database error translation
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Union
from uuid import UUID
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import (
    SQLAlchemyError,
    IntegrityError,
    OperationalError,
    DataError,
)
from starlette.exceptions import HTTPException as StarletteHTTPException

# Configure logging
logger = logging.getLogger("mshahara.errors")


class ErrorCode(str, Enum):
    """Standardized error codes for the application"""

    # Validation Errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_PERIOD = "INVALID_PERIOD"

    # Authentication/Authorization Errors (401/403)
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"

    # Resource Errors (404/409)
    NOT_FOUND = "NOT_FOUND"
    PAYROLL_RUN_NOT_FOUND = "PAYROLL_RUN_NOT_FOUND"
    NO_ACTIVE_EMPLOYEES = "NO_ACTIVE_EMPLOYEES"
    LOAN_LEDGER_NOT_FOUND = "LOAN_LEDGER_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    PAYROLL_ALREADY_FINALIZED = "PAYROLL_ALREADY_FINALIZED"
    CONCURRENT_CALCULATION = "CONCURRENT_CALCULATION"
    STALE_LOAN_DEDUCTION = "STALE_LOAN_DEDUCTION"
    INVALID_STATE = "INVALID_STATE"

    # Store Errors (503)
    TRANSIENT_STORE_ERROR = "TRANSIENT_STORE_ERROR"
    CALCULATION_TIMEOUT = "CALCULATION_TIMEOUT"

    # Database Errors (500)
    DATABASE_ERROR = "DATABASE_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"

    # Internal Errors (500)
    COMPUTATION_INVARIANT = "COMPUTATION_INVARIANT"
    MALFORMED_ASSIGNMENT = "MALFORMED_ASSIGNMENT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppException(Exception):
    """Base exception for all application exceptions"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        self.original_error = original_error
        self.timestamp = datetime.utcnow()
        super().__init__(self.message)


# ============================================================================
# Validation Exceptions
# ============================================================================

class ValidationException(AppException):
    """Base validation exception"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            field=field,
        )


class InvalidPeriodException(ValidationException):
    """Payroll period is missing or out of range"""

    def __init__(self, month: Any, year: Any):
        super().__init__(
            message=f"Invalid payroll period: month={month}, year={year}",
            field="period",
            code=ErrorCode.INVALID_PERIOD,
            details={"month": str(month), "year": str(year)},
        )


# ============================================================================
# Authentication/Authorization Exceptions
# ============================================================================

class AuthorizationException(AppException):
    """Authorization denied exception"""

    def __init__(
        self,
        message: str = "Permission denied",
        code: ErrorCode = ErrorCode.FORBIDDEN,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
        )


# ============================================================================
# Resource Exceptions
# ============================================================================

class NotFoundException(AppException):
    """Resource not found exception"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Union[str, UUID]] = None,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        if message is None:
            if resource_id:
                message = f"{resource_type} with ID '{resource_id}' not found"
            else:
                message = f"{resource_type} not found"
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": str(resource_id) if resource_id else None},
        )


class PayrollRunNotFoundException(NotFoundException):
    """Payroll run not found"""

    def __init__(self, run_id: Union[str, UUID], message: Optional[str] = None):
        super().__init__(
            resource_type="PayrollRun",
            resource_id=run_id,
            message=message,
            code=ErrorCode.PAYROLL_RUN_NOT_FOUND,
        )


class NoActiveEmployeesException(NotFoundException):
    """Tenant has no active employees to pay"""

    def __init__(self, tenant_id: Union[str, UUID]):
        super().__init__(
            resource_type="Employee",
            message="No active employees found for payroll processing",
            code=ErrorCode.NO_ACTIVE_EMPLOYEES,
        )
        self.details["tenant_id"] = str(tenant_id)


class ConflictException(AppException):
    """Resource conflict exception"""

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        code: ErrorCode = ErrorCode.RESOURCE_CONFLICT,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if resource_type:
            _details["resource_type"] = resource_type
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=_details,
        )


class PayrollAlreadyFinalizedException(ConflictException):
    """A completed payroll run cannot be recalculated or completed again"""

    def __init__(self, run_id: Union[str, UUID], period: Optional[str] = None):
        details = {"run_id": str(run_id)}
        if period:
            details["period"] = period
        super().__init__(
            message="Payroll for this period has already been completed",
            resource_type="PayrollRun",
            code=ErrorCode.PAYROLL_ALREADY_FINALIZED,
            details=details,
        )


class ConcurrentCalculationException(ConflictException):
    """Another calculation for the same period won the race"""

    def __init__(self, period: str, original_error: Optional[Exception] = None):
        super().__init__(
            message=f"A concurrent payroll calculation for {period} is in progress or has just finished",
            resource_type="PayrollRun",
            code=ErrorCode.CONCURRENT_CALCULATION,
            details={"period": period},
        )
        self.original_error = original_error


class StaleLoanDeductionException(ConflictException):
    """A draft's loan deduction exceeds the balance now outstanding"""

    def __init__(
        self,
        employee_id: Union[str, UUID],
        deduction: Decimal,
        balance: Decimal,
    ):
        super().__init__(
            message=(
                "The loan balance changed after this payroll was calculated. "
                "Recalculate the payroll before completing it."
            ),
            resource_type="LoanLedgerEntry",
            code=ErrorCode.STALE_LOAN_DEDUCTION,
            details={
                "employee_id": str(employee_id),
                "loan_deduction": str(deduction),
                "current_balance": str(balance),
            },
        )


class InvalidStateException(AppException):
    """Lifecycle transition not allowed from the current state"""

    def __init__(
        self,
        message: str,
        current_state: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if current_state:
            _details["current_state"] = current_state
        super().__init__(
            code=ErrorCode.INVALID_STATE,
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=_details,
        )


# ============================================================================
# Store / Computation Exceptions
# ============================================================================

class TransientStoreException(AppException):
    """Read/write failure against the record store; safe to retry"""

    def __init__(
        self,
        message: str = "The payroll store is temporarily unavailable. Please retry.",
        code: ErrorCode = ErrorCode.TRANSIENT_STORE_ERROR,
        attempts: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {"retryable": True}
        if attempts is not None:
            details["attempts"] = attempts
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details,
            original_error=original_error,
        )


class ComputationInvariantException(AppException):
    """A calculator received a value that indicates upstream data corruption"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.COMPUTATION_INVARIANT,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details,
        )


class MalformedAssignmentException(ComputationInvariantException):
    """Allowance or deduction assignment cannot be evaluated"""

    def __init__(self, assignment_id: Union[str, UUID], reason: str):
        super().__init__(
            message=f"Assignment '{assignment_id}' is malformed: {reason}",
            code=ErrorCode.MALFORMED_ASSIGNMENT,
            details={"assignment_id": str(assignment_id), "reason": reason},
        )


# ============================================================================
# Exception Handlers
# ============================================================================

def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    field: Optional[str] = None,
) -> JSONResponse:
    """Create a standardized error response"""
    content = {
        "detail": {
            "code": code.value,
            "message": message,
            "timestamp": datetime.utcnow().isoformat() + "Z",
        }
    }
    if field:
        content["detail"]["field"] = field
    if details:
        content["detail"]["details"] = details

    return JSONResponse(status_code=status_code, content=content)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle AppException"""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"AppException: {exc.code.value} - {exc.message}",
        extra={
            "code": exc.code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
        },
        exc_info=exc.original_error,
    )

    return create_error_response(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        field=exc.field,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTPException"""
    code_map = {
        400: ErrorCode.INVALID_INPUT,
        401: ErrorCode.UNAUTHORIZED,
        403: ErrorCode.FORBIDDEN,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        422: ErrorCode.VALIDATION_ERROR,
        500: ErrorCode.INTERNAL_ERROR,
        503: ErrorCode.TRANSIENT_STORE_ERROR,
    }

    error_code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    logger.warning(
        f"HTTPException: {exc.status_code} - {message}",
        extra={"path": request.url.path, "method": request.method},
    )

    return create_error_response(
        code=error_code,
        message=message,
        status_code=exc.status_code,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic validation errors"""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    logger.warning(
        f"ValidationError: {len(errors)} validation errors",
        extra={"path": request.url.path, "method": request.method, "errors": errors},
    )

    return create_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details={"errors": errors},
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle SQLAlchemy errors"""
    error_message = "A database error occurred"
    error_code = ErrorCode.DATABASE_ERROR
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if isinstance(exc, IntegrityError):
        error_message = "Data integrity constraint violated"
        error_code = ErrorCode.DATA_INTEGRITY_ERROR
        error_str = str(exc.orig).lower() if exc.orig else ""
        if "unique" in error_str or "duplicate" in error_str:
            error_message = "A record with this value already exists"
            error_code = ErrorCode.DUPLICATE_ENTRY
            status_code = status.HTTP_409_CONFLICT
        elif "foreign key" in error_str:
            error_message = "Referenced record does not exist"
            status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, OperationalError):
        error_message = "Database operation failed"
        error_code = ErrorCode.CONNECTION_ERROR
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(exc, DataError):
        error_message = "Invalid data format for database"
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    logger.error(
        f"SQLAlchemyError: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=error_code,
        message=error_message,
        status_code=status_code,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions"""
    logger.critical(
        f"UnhandledException: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    # In production, don't expose internal error details
    return create_error_response(
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


# ============================================================================
# Utility Functions
# ============================================================================

def validate_period(month: Any, year: Any) -> tuple:
    """Validate a (month, year) payroll period and return it as ints"""
    try:
        month_int = int(month)
        year_int = int(year)
    except (TypeError, ValueError):
        raise InvalidPeriodException(month, year)
    if not 1 <= month_int <= 12 or not 1900 <= year_int <= 9999:
        raise InvalidPeriodException(month, year)
    return month_int, year_int


# Export all exceptions for easy importing
__all__ = [
    # Base
    "AppException",
    "ErrorCode",

    # Validation
    "ValidationException",
    "InvalidPeriodException",

    # Auth
    "AuthorizationException",

    # Resource
    "NotFoundException",
    "PayrollRunNotFoundException",
    "NoActiveEmployeesException",
    "ConflictException",
    "PayrollAlreadyFinalizedException",
    "ConcurrentCalculationException",
    "StaleLoanDeductionException",
    "InvalidStateException",

    # Store / Computation
    "TransientStoreException",
    "ComputationInvariantException",
    "MalformedAssignmentException",

    # Handlers
    "setup_exception_handlers",
    "create_error_response",

    # Validators
    "validate_period",
]

# shared/common/exceptions.py
"""
Exception Handler

Renders DRF errors and service domain errors in one envelope:
{"success": false, "error": {"code", "message", "request_id", "details"}}
"""

import logging
import traceback
from typing import Any, Dict, Optional
from rest_framework import status
from rest_framework.views import exception_handler
from rest_framework.response import Response
from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import Http404
from django.conf import settings

logger = logging.getLogger(__name__)


def is_domain_error(exc) -> bool:
    """Service domain errors carry an HTTP status and an error code."""
    return (
        isinstance(exc, Exception)
        and isinstance(getattr(exc, 'http_status', None), int)
        and isinstance(getattr(exc, 'error_code', None), str)
    )


def domain_error_details(exc) -> Optional[Any]:
    """Structured details for a domain error: conflicts or rule errors."""
    conflicts = getattr(exc, 'conflicts', None)
    if conflicts:
        return {
            'conflicts': [
                c.to_dict() if hasattr(c, 'to_dict') else c
                for c in conflicts
            ]
        }

    errors = getattr(exc, 'errors', None)
    if errors:
        return {'errors': list(errors)}

    return None


def error_body(code: str, message: str, request_id: str = None, details: Any = None) -> Dict:
    error = {
        'code': code,
        'message': message,
        'request_id': request_id,
    }
    if details is not None:
        error['details'] = details
    return {'success': False, 'error': error}


# =============================================================================
# EXCEPTION HANDLER
# =============================================================================

def custom_exception_handler(exc, context) -> Optional[Response]:
    """
    Custom exception handler for DRF.
    Provides consistent error response format across all services.
    """

    # Get the request ID for tracing
    request = context.get('request')
    request_id = getattr(request, 'request_id', None) if request else None

    # Domain errors raised by the service layer
    if is_domain_error(exc):
        if exc.http_status >= 500:
            logger.error(f"Domain error {exc.error_code}: {exc}")
        return Response(
            error_body(exc.error_code, str(exc), request_id, domain_error_details(exc)),
            status=exc.http_status
        )

    # Call DRF's default exception handler first
    response = exception_handler(exc, context)

    # If DRF handled it, format the response
    if response is not None:
        return format_error_response(exc, response, request_id)

    # Handle Django ValidationError
    if isinstance(exc, DjangoValidationError):
        errors = exc.message_dict if hasattr(exc, 'message_dict') else {'detail': exc.messages}
        return Response(
            error_body('VALIDATION_ERROR', 'Validation error', request_id, errors),
            status=status.HTTP_400_BAD_REQUEST
        )

    # Handle Http404
    if isinstance(exc, Http404):
        return Response(
            error_body('NOT_FOUND', str(exc) or 'Resource not found', request_id),
            status=status.HTTP_404_NOT_FOUND
        )

    # Log unexpected exceptions
    logger.exception(
        f"Unhandled exception: {exc}",
        extra={
            'request_id': request_id,
            'exception_type': type(exc).__name__,
        }
    )

    # Return generic error in production, detailed in debug
    if settings.DEBUG:
        return Response(
            error_body(
                'INTERNAL_ERROR',
                str(exc),
                request_id,
                {
                    'type': type(exc).__name__,
                    'traceback': traceback.format_exc().split('\n'),
                }
            ),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    return Response(
        error_body(
            'INTERNAL_ERROR',
            'An unexpected error occurred. Please try again later.',
            request_id
        ),
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )


def format_error_response(exc, response: Response, request_id: str = None) -> Response:
    """Format error response in consistent structure"""

    error_code = getattr(exc, 'default_code', 'error').upper()
    details = None

    # Field-level validation errors from DRF
    if isinstance(response.data, dict) and 'detail' not in response.data:
        details = response.data
    elif isinstance(response.data, list):
        details = response.data

    response.data = error_body(
        error_code,
        get_error_message(exc, response),
        request_id,
        details
    )
    return response


def get_error_message(exc, response: Response) -> str:
    """Extract error message from exception or response"""

    if hasattr(exc, 'detail'):
        if isinstance(exc.detail, str):
            return exc.detail
        if isinstance(exc.detail, list) and exc.detail:
            return str(exc.detail[0])
        if isinstance(exc.detail, dict):
            return str(exc.detail.get('detail', 'Validation error'))

    if isinstance(response.data, dict):
        return str(response.data.get('detail', response.data))

    return str(response.data)

"""Mapping from domain exceptions to HTTP responses."""

from rest_framework import status
from rest_framework.response import Response

from common.exceptions import DomainError

ERROR_STATUS = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "self_reference": status.HTTP_400_BAD_REQUEST,
    "invalid_state": status.HTTP_409_CONFLICT,
    "capacity_exceeded": status.HTTP_409_CONFLICT,
    "duplicate_participant": status.HTTP_409_CONFLICT,
    "transient_conflict": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def error_response(exc: DomainError) -> Response:
    """Build the JSON error body for a domain failure."""
    body = {
        "error": exc.message,
        "error_code": exc.error_code,
    }
    if getattr(exc, "retryable", False):
        body["retryable"] = True
    return Response(body, status=ERROR_STATUS.get(exc.error_code, status.HTTP_400_BAD_REQUEST))

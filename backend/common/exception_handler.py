"""DRF exception handler producing the ``{success, error, message}`` envelope."""

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from bookings.exceptions import DispatchError

logger = logging.getLogger(__name__)


def _first_message(detail):
    if isinstance(detail, dict):
        for value in detail.values():
            return _first_message(value)
        return ""
    if isinstance(detail, (list, tuple)):
        return _first_message(detail[0]) if detail else ""
    return str(detail)


def dispatch_exception_handler(exc, context):
    if isinstance(exc, DispatchError):
        body = {
            'success': False,
            'error': exc.error_code,
            'message': exc.message,
        }
        body.update(exc.extra)
        return Response(body, status=exc.status_code)

    response = exception_handler(exc, context)
    if response is not None:
        codes = getattr(exc, 'get_codes', lambda: None)()
        body = {
            'success': False,
            'error': codes if isinstance(codes, str) else getattr(exc, 'default_code', 'error'),
            'message': _first_message(response.data),
        }
        if isinstance(response.data, dict) and 'detail' not in response.data:
            body['errors'] = response.data
        response.data = body
        return response

    view = context.get('view')
    logger.exception("Unhandled error in %s", view.__class__.__name__ if view else "request")
    return Response(
        {
            'success': False,
            'error': 'server_error',
            'message': 'Something went wrong. Please refresh and try again.',
        },
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )

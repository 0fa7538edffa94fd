# booklend/middleware.py

"""
Request context middleware for the billing engine.

Captures who called and from where, so that BaseModel.save() and the
financial audit log can record it without the request being passed down
through every service call. A request id is taken from X-Request-ID (or
generated) and echoed back on the response for log correlation.
"""

import logging
import uuid

from utils.context import set_request_context, clear_request_context

logger = logging.getLogger(__name__)


class RequestContextMiddleware:
    """Populate utils.context for the lifetime of one request."""

    REQUEST_ID_HEADER = 'HTTP_X_REQUEST_ID'

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request_id = request.META.get(self.REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.request_id = request_id

        user = getattr(request, 'user', None)
        set_request_context(
            user=user if user is not None and user.is_authenticated else None,
            ip_address=self._get_client_ip(request),
            user_agent=request.META.get('HTTP_USER_AGENT', ''),
            request_path=request.path,
            request_id=request_id,
        )

        try:
            response = self.get_response(request)
        finally:
            # Always clear context after request
            clear_request_context()

        response['X-Request-ID'] = request_id
        return response

    def _get_client_ip(self, request):
        """
        Get the real client IP address, accounting for proxies.
        """
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')

        if x_forwarded_for:
            # X-Forwarded-For can contain multiple IPs, take the first one
            return x_forwarded_for.split(',')[0].strip()

        return request.META.get('REMOTE_ADDR')

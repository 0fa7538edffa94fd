# utils/context.py

"""
Thread-local request context for audit logging.

The middleware sets it at the start of each request; management commands
use RequestContext to tag the work they do as automated.
"""

from threading import local
import logging

logger = logging.getLogger(__name__)

# Thread-local storage
_thread_locals = local()


def set_request_context(user=None, ip_address=None, user_agent=None,
                        request_path=None, request_id=None, is_automated=False):
    """
    Set the current request context for this thread.

    Args:
        user: The authenticated user (or None)
        ip_address: Client IP address
        user_agent: Client user agent string
        request_path: The request path/URL
        request_id: Correlation id echoed in logs and responses
        is_automated: True for management commands and scheduled runs
    """
    _thread_locals.request_context = {
        'user': user,
        'ip_address': ip_address,
        'user_agent': user_agent or '',
        'request_path': request_path or '',
        'request_id': request_id or '',
        'is_automated': is_automated,
    }

    logger.debug(f"Set request context: user={user}, ip={ip_address}, request_id={request_id}")


def get_request_context():
    """
    Get the current request context for this thread.

    Returns:
        dict: Request context, or None if no context is set.
    """
    return getattr(_thread_locals, 'request_context', None)


def clear_request_context():
    """Clear the request context for this thread."""
    if hasattr(_thread_locals, 'request_context'):
        delattr(_thread_locals, 'request_context')


# ============================================================================
# CONTEXT MANAGER
# ============================================================================

class RequestContext:
    """
    Context manager for temporarily setting request context.

    Example:
        with RequestContext(request_path='manage.py reconcile_transfers', is_automated=True):
            TransferReconciler(client).reconcile()
    """

    def __init__(self, user=None, ip_address=None, user_agent=None,
                 request_path=None, request_id=None, is_automated=False):
        self.context = {
            'user': user,
            'ip_address': ip_address,
            'user_agent': user_agent or '',
            'request_path': request_path or '',
            'request_id': request_id or '',
            'is_automated': is_automated,
        }
        self.previous_context = None

    def __enter__(self):
        self.previous_context = get_request_context()
        _thread_locals.request_context = self.context
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.previous_context:
            _thread_locals.request_context = self.previous_context
        else:
            clear_request_context()

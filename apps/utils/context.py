# utils/context.py

"""
Who is acting, and from where, on the current thread.

``BaseModel.save`` reads it to fill ``created_by_id`` / ``updated_by_id`` and
``RequestContextFilter`` adds it to log records. Management commands and the
web layer wrap each unit of work in a ``RequestContext``.
"""

from threading import local
import logging

logger = logging.getLogger(__name__)

_state = local()


def get_request_context():
    """
    Returns:
        dict with ``user``, ``ip_address`` and ``request_path``, or None
        outside a ``RequestContext``.
    """
    return getattr(_state, 'context', None)


def get_acting_user_id():
    """Primary key of the acting user as a string, or None."""
    context = get_request_context()
    user = context.get('user') if context else None
    if user is None:
        return None
    return str(user.pk)


class RequestContext:
    """
    Attribute writes and log lines inside the block to ``user``.

    Example:
        with RequestContext(user=bursar, ip_address='10.0.0.5'):
            LedgerService().record_payment(invoice_id, '500.00', 'CASH')
    """

    def __init__(self, user=None, ip_address=None, request_path=''):
        self.context = {'user': user, 'ip_address': ip_address, 'request_path': request_path}
        self._outer = None

    def __enter__(self):
        self._outer = get_request_context()
        _state.context = self.context
        logger.debug(f"Entered request context for user {getattr(self.context['user'], 'pk', None)}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._outer is None:
            del _state.context
        else:
            _state.context = self._outer

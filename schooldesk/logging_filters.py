# schooldesk/logging_filters.py

import logging


class RequestContextFilter(logging.Filter):
    """
    Adds ``user`` and ``ip`` to every log record from the thread-local
    request context. Both are ``-`` for records logged outside one.
    """

    def filter(self, record):
        from utils.context import get_acting_user_id, get_request_context

        context = get_request_context() or {}
        if not hasattr(record, 'user'):
            record.user = get_acting_user_id() or '-'
        if not hasattr(record, 'ip'):
            record.ip = context.get('ip_address') or '-'
        return True

# schooldesk/managers.py

"""
Per-thread school database selection.

A deployment may keep one database per school. The alias selected for the
current thread decides where grade and ledger records are read and written;
with nothing selected everything stays on ``default``.
"""

from threading import local
import logging

from django.conf import settings
from django.db import connections, models

logger = logging.getLogger(__name__)

_selection = local()


def get_current_db():
    """Alias selected for this thread, or None."""
    return getattr(_selection, 'alias', None)


def set_current_db(alias):
    """
    Select ``alias`` for this thread.

    Returns:
        bool: False when the alias is empty or not configured in DATABASES
    """
    if not alias:
        return False
    if alias not in settings.DATABASES:
        logger.warning(f"Ignoring unknown school database '{alias}'")
        return False
    _selection.alias = alias
    return True


def clear_current_db():
    vars(_selection).pop('alias', None)


def get_active_db():
    """Alias that queries and transactions should use right now."""
    alias = get_current_db()
    if alias and alias in connections:
        return alias
    return 'default'


class DatabaseContext:
    """
    Run a block against one school's database.

    Example:
        with DatabaseContext('school_monrovia'):
            rows = LedgerService().compute_arrears()
    """

    def __init__(self, alias):
        self.alias = alias
        self.previous = None

    def __enter__(self):
        self.previous = get_current_db()
        set_current_db(self.alias)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.previous:
            set_current_db(self.previous)
        else:
            clear_current_db()


class SchoolManager(models.Manager):
    """Default manager of every school model; queries follow ``get_active_db()``."""

    def get_queryset(self):
        queryset = super().get_queryset()
        alias = get_active_db()
        if alias == 'default':
            return queryset
        return queryset.using(alias)

# core/utils.py

"""
School-local time and money formatting helpers.
"""
from zoneinfo import ZoneInfo
import logging

from django.utils import timezone

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = 'Africa/Monrovia'


# =============================================================================
# CURRENCY & MONEY FORMATTING
# =============================================================================

def format_money(amount, currency=None, include_symbol=True):
    """
    Format an amount using the school's financial settings.

    Example:
        >>> format_money(Decimal('1500'), 'LRD')
        'LRD 1,500.00'
    """
    from core.models import FinancialSettings

    settings = FinancialSettings.get_instance()
    return settings.format_currency(amount, currency=currency, include_symbol=include_symbol)


# =============================================================================
# TIMEZONE UTILITIES
# =============================================================================

def get_school_timezone():
    """
    The school's operational timezone (Africa/Monrovia until configured).

    Reads the column directly rather than through ``get_instance()``: every
    model save stamps its timestamps through here, and that must not create
    the configuration row as a side effect.
    """
    from core.models import SINGLETON_PK, SchoolConfiguration

    name = (
        SchoolConfiguration.objects
        .filter(pk=SINGLETON_PK)
        .values_list('operational_timezone', flat=True)
        .first()
    )
    if not name:
        return ZoneInfo(DEFAULT_TIMEZONE)
    return SchoolConfiguration(operational_timezone=name).get_timezone()


def get_school_current_time():
    return timezone.now().astimezone(get_school_timezone())


def get_school_today():
    """
    Today's date in the school's operational timezone.

    Due dates and overdue checks compare against this date, not the server's
    UTC date.
    """
    return get_school_current_time().date()

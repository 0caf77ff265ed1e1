# fees/signals.py

"""
Fees Signals
Fill in invoice and receipt numbers for rows created outside LedgerService
(admin, imports, fixtures). Rows created by the service already carry one.
"""

from django.db.models.signals import pre_save
from django.dispatch import receiver
import logging

from .models import FeeInvoice, Receipt

logger = logging.getLogger(__name__)


@receiver(pre_save, sender=FeeInvoice)
def assign_invoice_number(sender, instance, **kwargs):
    if not instance.invoice_number:
        from .utils import generate_invoice_number

        year = instance.issue_date.year if instance.issue_date else None
        instance.invoice_number = generate_invoice_number(year=year)
        logger.info(f"Assigned invoice number {instance.invoice_number}")


@receiver(pre_save, sender=Receipt)
def assign_receipt_number(sender, instance, **kwargs):
    if not instance.receipt_number:
        from .utils import generate_receipt_number

        year = instance.issued_at.year if instance.issued_at else None
        instance.receipt_number = generate_receipt_number(year=year)
        logger.info(f"Assigned receipt number {instance.receipt_number}")

# core/store.py

import logging

from django.db import IntegrityError, transaction
from django.db.models import F

from core.exceptions import AllocationConflict
from core.models import NumberSequence
from schooldesk.managers import get_active_db

logger = logging.getLogger(__name__)


class SequenceStore:
    """
    Database-backed counter for numbered documents.

    The counter row is incremented with a single ``UPDATE ... SET last_value =
    last_value + 1``; the row lock is held until the surrounding transaction
    commits, so concurrent writers in other processes queue behind it and
    each receive a distinct value.
    """

    def atomic(self):
        return transaction.atomic(using=get_active_db())

    def next_sequence_value(self, kind, scope):
        """
        Atomically increment and return the counter for (kind, scope).

        Raises:
            AllocationConflict: another writer created the counter row first.
        """
        from core.utils import get_school_current_time

        with self.atomic():
            updated = NumberSequence.objects.filter(kind=kind, scope=scope).update(
                last_value=F('last_value') + 1,
                updated_at=get_school_current_time(),
            )
            if updated:
                return NumberSequence.objects.filter(kind=kind, scope=scope).values_list(
                    'last_value', flat=True
                ).get()

            try:
                with self.atomic():
                    NumberSequence.objects.create(kind=kind, scope=scope, last_value=1)
            except IntegrityError as e:
                raise AllocationConflict(kind, scope) from e

            logger.info(f"Started {kind} number sequence for scope {scope}")
            return 1

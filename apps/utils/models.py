# utils/models.py

"""
Abstract base model shared by every school record.

- UUID primary key
- ``created_at`` / ``updated_at`` stamped in the school's operational timezone
- ``created_by_id`` / ``updated_by_id`` taken from the thread-local request context
- Writes and reloads go to the school database selected for the current thread
"""

import logging
import uuid

from django.db import models

from schooldesk.managers import get_current_db, SchoolManager

logger = logging.getLogger(__name__)


def _route(kwargs):
    current_db = get_current_db()
    if current_db:
        kwargs.setdefault('using', current_db)
    return kwargs


# =============================================================================
# BASE MODEL - SCHOOL-SPECIFIC DATA
# =============================================================================

class BaseModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Stamped in save(); blank so full_clean() passes on unsaved rows
    created_at = models.DateTimeField("Created At", blank=True, db_index=True)
    updated_at = models.DateTimeField("Updated At", blank=True, db_index=True)

    # Plain ids: users live in the default database, records may not
    created_by_id = models.CharField("Created By", max_length=50, null=True, blank=True)
    updated_by_id = models.CharField("Updated By", max_length=50, null=True, blank=True)

    objects = SchoolManager()

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        from core.utils import get_school_current_time
        from utils.context import get_acting_user_id

        now = get_school_current_time()
        self.updated_at = now
        if self._state.adding and not self.created_at:
            self.created_at = now

        user_id = get_acting_user_id()
        if user_id is not None:
            self.updated_by_id = user_id
            if self._state.adding and not self.created_by_id:
                self.created_by_id = user_id

        return super().save(*args, **_route(kwargs))

    def delete(self, *args, **kwargs):
        return super().delete(*args, **_route(kwargs))

    def refresh_from_db(self, *args, **kwargs):
        return super().refresh_from_db(*args, **_route(kwargs))

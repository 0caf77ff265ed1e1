# schooldesk/routers.py
import logging

from django.db import connections

from .managers import get_current_db

logger = logging.getLogger(__name__)


class SchoolRouter:
    """
    Routes school data to the database selected for the current thread.

    Framework tables (auth, contenttypes) always live in ``default``. School
    apps follow ``get_current_db()`` and fall back to Django's default routing
    when no school database is active.
    """

    default_apps = {'auth', 'contenttypes'}
    school_apps = {'core', 'students', 'academics', 'fees'}

    def db_for_read(self, model, **hints):
        app_label = model._meta.app_label
        if app_label in self.default_apps:
            return 'default'
        if app_label in self.school_apps:
            db = get_current_db()
            if db and db in connections:
                return db
        return None

    def db_for_write(self, model, **hints):
        return self.db_for_read(model, **hints)

    def allow_relation(self, obj1, obj2, **hints):
        db1 = obj1._state.db
        db2 = obj2._state.db
        if db1 and db2 and db1 != db2:
            logger.warning(
                f"Blocked relation between {obj1.__class__.__name__} on '{db1}' "
                f"and {obj2.__class__.__name__} on '{db2}'"
            )
            return False
        return None

    def allow_migrate(self, db, app_label, model_name=None, **hints):
        if app_label in self.school_apps:
            return True
        return None

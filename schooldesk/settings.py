# schooldesk/settings.py

import os
import sys
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

# Django apps are importable as top-level packages (``fees``, ``core`` ...)
APPS_DIR = BASE_DIR / 'apps'
if str(APPS_DIR) not in sys.path:
    sys.path.insert(0, str(APPS_DIR))


def env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


SECRET_KEY = os.environ.get('SCHOOLDESK_SECRET_KEY', 'schooldesk-insecure-development-key')
DEBUG = env_bool('SCHOOLDESK_DEBUG', True)
ALLOWED_HOSTS = [h for h in os.environ.get('SCHOOLDESK_ALLOWED_HOSTS', '').split(',') if h]

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'django_countries',
    'utils',
    'core',
    'students',
    'academics.apps.AcademicsConfig',
    'fees.apps.FeesConfig',
]

MIDDLEWARE = []

# ==============================================================================
# DATABASES
# ==============================================================================

DATABASES = {
    'default': {
        'ENGINE': os.environ.get('SCHOOLDESK_DB_ENGINE', 'django.db.backends.sqlite3'),
        'NAME': os.environ.get('SCHOOLDESK_DB_NAME', str(BASE_DIR / 'schooldesk.sqlite3')),
        'USER': os.environ.get('SCHOOLDESK_DB_USER', ''),
        'PASSWORD': os.environ.get('SCHOOLDESK_DB_PASSWORD', ''),
        'HOST': os.environ.get('SCHOOLDESK_DB_HOST', ''),
        'PORT': os.environ.get('SCHOOLDESK_DB_PORT', ''),
    }
}

DATABASE_ROUTERS = ['schooldesk.routers.SchoolRouter']

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# ==============================================================================
# LOCALE
# ==============================================================================

LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.environ.get('SCHOOLDESK_TIME_ZONE', 'Africa/Monrovia')
USE_I18N = True
USE_TZ = True

COUNTRIES_FIRST = ['LR']

# ==============================================================================
# LOGGING
# ==============================================================================

LOG_LEVEL = os.environ.get('SCHOOLDESK_LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'filters': {
        'request_context': {
            '()': 'schooldesk.logging_filters.RequestContextFilter',
        },
    },
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name} [user={user} ip={ip}] {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'filters': ['request_context'],
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'fees': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'academics': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'core': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'students': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
    },
}

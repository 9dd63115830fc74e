"""
Django settings for the Stride core.

Only the pieces the business-logic layer needs are configured here: the
database the task store lives in, time zone handling and logging. Every value
can be overridden with a ``STRIDE_*`` environment variable.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


SECRET_KEY = os.environ.get(
    'STRIDE_SECRET_KEY',
    'django-insecure-stride-core-local-development-key'
)

DEBUG = _env_bool('STRIDE_DEBUG', default=False)

ALLOWED_HOSTS = []


# ==================== Applications ====================

INSTALLED_APPS = [
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'rest_framework',
    'tracker',
]

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# ==================== Database ====================
# The task store. SQLite unless STRIDE_DB_PATH points somewhere else.

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('STRIDE_DB_PATH', str(BASE_DIR / 'stride.db')),
    }
}


# ==================== Time ====================

LANGUAGE_CODE = 'en-us'

TIME_ZONE = os.environ.get('STRIDE_TIME_ZONE', 'UTC')

USE_I18N = False

USE_TZ = True


# ==================== Logging ====================

STRIDE_LOG_LEVEL = os.environ.get('STRIDE_LOG_LEVEL', 'INFO').upper()

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '%(asctime)s %(levelname)s %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'tracker': {
            'handlers': ['console'],
            'level': STRIDE_LOG_LEVEL,
            'propagate': False,
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
}

"""
Django settings for the medicine reservation backend.

Values come from environment variables; a `.env` file next to manage.py is
loaded first for local development.
"""
import os
from pathlib import Path

import dj_database_url
from celery.schedules import crontab
from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
env_path = BASE_DIR / '.env'
if env_path.exists():
    load_dotenv(dotenv_path=env_path)


def env_flag(name, default='0'):
    return os.getenv(name, default).lower() in {'1', 'true', 'yes'}


# -----------------------------------------------------------------------------
# Core flags
# -----------------------------------------------------------------------------
ENV = os.getenv('ENV', 'dev')
DEBUG = env_flag('DEBUG')
SECRET_KEY = os.getenv('SECRET_KEY') or 'replace-me-with-a-secure-secret-key'
ALLOWED_HOSTS = [
    h.strip() for h in os.getenv('ALLOWED_HOSTS', '127.0.0.1,localhost').split(',') if h.strip()
]

if ENV == 'prod':
    if DEBUG:
        raise RuntimeError('DEBUG must be 0 in prod')
    if SECRET_KEY == 'replace-me-with-a-secure-secret-key':
        raise RuntimeError('SECRET_KEY must be set securely in prod')

# -----------------------------------------------------------------------------
# Applications
# -----------------------------------------------------------------------------
INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    # Third-party apps
    'rest_framework',
    # Local apps
    'core',
    'inventory',
    'reservations',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'config.urls'
WSGI_APPLICATION = 'config.wsgi.application'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

# -----------------------------------------------------------------------------
# Database: DATABASE_URL (e.g. postgres://...) or SQLite for development
# -----------------------------------------------------------------------------
DATABASES = {
    'default': dj_database_url.config(
        default=f"sqlite:///{(BASE_DIR / 'db.sqlite3').as_posix()}",
        conn_max_age=int(os.getenv('DB_CONN_MAX_AGE', '60')),
    )
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.getenv('TIME_ZONE', 'UTC')
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

# -----------------------------------------------------------------------------
# DRF
# -----------------------------------------------------------------------------
REST_FRAMEWORK = {
    'DEFAULT_PAGINATION_CLASS': 'rest_framework.pagination.PageNumberPagination',
    'PAGE_SIZE': 20,
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.AllowAny',
    ],
    'UNAUTHENTICATED_USER': None,
    'EXCEPTION_HANDLER': 'core.exceptions.api_exception_handler',
}

# -----------------------------------------------------------------------------
# Redis / rate limiting
# -----------------------------------------------------------------------------
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
RATE_LIMIT_ENABLED = env_flag('RATE_LIMIT_ENABLED', '1')

# -----------------------------------------------------------------------------
# Reservations
# -----------------------------------------------------------------------------
RESERVATION_HOLD_HOURS = int(os.getenv('RESERVATION_HOLD_HOURS', '24'))
RESERVATION_CODE_MAX_ATTEMPTS = int(os.getenv('RESERVATION_CODE_MAX_ATTEMPTS', '5'))
LEDGER_MAX_RETRIES = int(os.getenv('LEDGER_MAX_RETRIES', '3'))
LOW_STOCK_ALERT_HOUR = int(os.getenv('LOW_STOCK_ALERT_HOUR', '9'))

# -----------------------------------------------------------------------------
# Celery
# -----------------------------------------------------------------------------
CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', REDIS_URL)
CELERY_RESULT_BACKEND = os.getenv('CELERY_RESULT_BACKEND', REDIS_URL)
CELERY_TASK_ALWAYS_EAGER = env_flag('CELERY_TASK_ALWAYS_EAGER')
CELERY_TIMEZONE = TIME_ZONE
CELERY_BEAT_SCHEDULE = {
    'expire-stale-reservations': {
        'task': 'reservations.tasks.expire_stale_reservations',
        'schedule': crontab(minute=0),
    },
    'refresh-inventory-statuses': {
        'task': 'inventory.tasks.refresh_inventory_statuses',
        'schedule': crontab(minute=0, hour='*/6'),
    },
    'send-low-stock-alerts': {
        'task': 'inventory.tasks.send_low_stock_alerts',
        'schedule': crontab(minute=0, hour=LOW_STOCK_ALERT_HOUR),
    },
    'generate-daily-reservation-report': {
        'task': 'reservations.tasks.generate_daily_reservation_report',
        'schedule': crontab(minute=15, hour=0),
    },
}

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name}: {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': LOG_LEVEL,
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': os.getenv('DJANGO_LOG_LEVEL', 'WARNING'),
            'propagate': False,
        },
    },
}

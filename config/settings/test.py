"""Settings used by the test suite."""

import os

from .base import *  # noqa: F401,F403

DEBUG = False

# DB_ENGINE=django.db.backends.postgresql runs the suite, including the
# concurrency tests, against PostgreSQL
if not os.environ.get('DB_ENGINE', '').endswith('postgresql'):
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': ':memory:',
        }
    }

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.FileSystemStorage'},
    'staticfiles': {'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage'},
}

SMS_GATEWAY_URL = ''
WAITLIST_CLAIM_BASE_URL = 'http://testserver'

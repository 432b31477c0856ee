"""
WSGI config for the bakery project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'bakery.settings.local')

application = get_wsgi_application()

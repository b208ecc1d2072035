"""
WSGI config for the SalesDesk backend.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'salesdesk.config.settings')

application = get_wsgi_application()

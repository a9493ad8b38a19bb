"""WSGI config for the UMS project"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'UMS.settings')

application = get_wsgi_application()

"""
ASGI config for the Brain API backend.

Served by daphne: `daphne config.asgi:application`.
"""
import os

from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

application = get_asgi_application()
